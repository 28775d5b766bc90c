"""Instance state queries and fan-out across instances."""
