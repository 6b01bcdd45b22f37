from socialgraph.models.user import User
from socialgraph.models.relationship import Relationship
from socialgraph.models.suggestion import Suggestion

__all__ = ["User", "Relationship", "Suggestion"]
