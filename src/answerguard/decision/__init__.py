"""Expected-value answer/abstain decisions."""
