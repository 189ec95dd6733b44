"""LendPool: a peer-to-peer lending marketplace engine."""
