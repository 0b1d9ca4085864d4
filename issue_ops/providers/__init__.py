"""Issue-tracker collaborators."""
