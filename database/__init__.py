from .database import Database, TOPIC_TRAINER_AVAILABILITY

__all__ = ["Database", "TOPIC_TRAINER_AVAILABILITY"]
