"""Chalk: an interactive terminal coding assistant with tool calling."""
