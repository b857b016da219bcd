"""Core infrastructure: configuration and numerical differentiation."""
