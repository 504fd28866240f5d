"""Domain model of the event discovery core."""
