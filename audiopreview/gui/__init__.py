"""Qt desktop viewer for Audio Preview."""
