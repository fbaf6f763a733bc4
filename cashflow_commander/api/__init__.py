"""Service layer, caller identity and domain errors."""
