"""Appeal Engine - appeal-outcome prediction and learning backend."""
