"""Runtime support for tagcodec serialization."""

from .binary import BinaryProtocol as BinaryProtocol
from .compact import CompactProtocol as CompactProtocol
from .errors import *
from .json_protocol import JSONProtocol as JSONProtocol
from .protocol import PROTOCOL_NAMES as PROTOCOL_NAMES
from .protocol import Protocol as Protocol
from .protocol import get_protocol as get_protocol
from .serialization import FieldInfo as FieldInfo
from .serialization import Struct as Struct
from .serialization import StructSpec as StructSpec
from .serialization import read_value as read_value
from .serialization import tfield as tfield
from .serialization import write_value as write_value
from .types import *
