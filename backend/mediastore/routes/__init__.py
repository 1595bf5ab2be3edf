from .auth import router as auth
from .files import router as files
from .users import router as users
