"""Click commands registered on the bulwark CLI group."""
