"""CLI module for birdlink."""
