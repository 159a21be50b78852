"""Abstract interfaces for transports, backends, and external collaborators."""
