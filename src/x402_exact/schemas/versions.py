from enum import IntEnum
from typing import List


class ProtocolVersion(IntEnum):
    V1 = 1


SUPPORTED_VERSIONS: List[ProtocolVersion] = [ProtocolVersion.V1]
