"""Qt integration for the edit pipeline."""
