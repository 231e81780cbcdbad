"""Default implementations of the batch collaborator protocols."""
