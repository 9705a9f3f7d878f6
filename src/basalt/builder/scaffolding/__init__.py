"""Scaffolding for new Basalt competition configurations."""
