"""Pure domain layer: value DTOs and the injectable clock."""
