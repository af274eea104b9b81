"""External collaborators called by pipeline stages."""
