"""Repository boundary between the geo services and property storage."""
