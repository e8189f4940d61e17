"""Interaction engine for the CommUnityLink neighborhood app."""

__version__ = "0.1.0"
