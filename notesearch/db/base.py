# Import all the models, so that Base has them before create_all runs
from notesearch.models.base_import import Base  # noqa
from notesearch.models.user_model import User  # noqa
from notesearch.models.note_model import Note  # noqa
from notesearch.models.note_embedding_model import NoteEmbedding  # noqa
from notesearch.models.instance_setting_model import InstanceSetting  # noqa
