from talent_training.routers import admin, health, me, quiz, training

__all__ = [
    "admin",
    "health",
    "me",
    "quiz",
    "training",
]
