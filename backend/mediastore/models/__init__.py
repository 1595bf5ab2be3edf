from .user import User
from .file import FileRecord
from .storage import StorageRecord
