"""Domain layer — enums and the exception hierarchy shared by every gateway."""
