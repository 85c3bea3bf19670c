from .user_model import User
from .note_model import Note
from .note_embedding_model import NoteEmbedding
from .instance_setting_model import InstanceSetting

__all__ = [
    "User",
    "Note",
    "NoteEmbedding",
    "InstanceSetting",
]
