"""Configuration for the chat memory service."""
