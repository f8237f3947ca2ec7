"""Settings, logging and the engine exception hierarchy."""
