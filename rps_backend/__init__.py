"""Online rock-paper-scissors room coordinator."""
