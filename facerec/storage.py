"""
This module implements the binary record codec used to persist a face
database.

All values are written little-endian regardless of the host:
- counts and ids as 32-bit signed integers
- matrix data as 64-bit floats
- strings as a length (including the NUL terminator) followed by UTF-8 bytes

The reader validates every field and raises IOFailure on short reads instead
of returning partially initialized data.
"""

import os
import numpy as np
from facerec.errors import IOFailure

INT32 = np.dtype('<i4')
FLOAT64 = np.dtype('<f8')


class RecordWriter:
    """
    Sequential writer for database records.

    Attributes:
        fp: Binary file object opened for writing
    """

    def __init__(self, fp):
        self.fp = fp

    def write_bytes(self, data):
        self.fp.write(data)

    def write_int(self, value):
        self.fp.write(np.array([value], dtype=INT32).tobytes())

    def write_string(self, text):
        data = text.encode('utf-8') + b'\0'
        self.write_int(len(data))
        self.fp.write(data)

    def write_array(self, values):
        self.fp.write(np.ascontiguousarray(values, dtype=FLOAT64).tobytes())


class RecordReader:
    """
    Sequential, validating reader for database records.

    Every read checks the number of bytes left in the file before touching
    it, so a corrupt count can never trigger a huge allocation or a short
    read.

    Attributes:
        fp: Binary file object opened for reading
        path: Path of the file, used in error messages
        size: Total size of the file in bytes
    """

    def __init__(self, fp, path):
        self.fp = fp
        self.path = path
        self.size = os.fstat(fp.fileno()).st_size

    def remaining(self):
        return self.size - self.fp.tell()

    def read_bytes(self, n, what="data"):
        if n < 0 or n > self.remaining():
            raise IOFailure(
                f"{self.path}: truncated file while reading {what} "
                f"(needed {n} bytes, {self.remaining()} left)"
            )
        data = self.fp.read(n)
        if len(data) != n:
            raise IOFailure(f"{self.path}: short read while reading {what}")
        return data

    def read_int(self, what="integer"):
        return int(np.frombuffer(self.read_bytes(INT32.itemsize, what), dtype=INT32)[0])

    def read_count(self, what="count"):
        value = self.read_int(what)
        if value < 0:
            raise IOFailure(f"{self.path}: negative {what} ({value})")
        return value

    def read_string(self, what="string"):
        length = self.read_int(f"{what} length")
        if length < 1:
            raise IOFailure(f"{self.path}: invalid {what} length ({length})")

        data = self.read_bytes(length, what)
        if data[-1:] != b'\0':
            raise IOFailure(f"{self.path}: {what} is not NUL-terminated")

        try:
            return data[:-1].decode('utf-8')
        except UnicodeDecodeError as e:
            raise IOFailure(f"{self.path}: {what} is not valid UTF-8") from e

    def read_array(self, count, what="array"):
        data = self.read_bytes(count * FLOAT64.itemsize, what)
        return np.frombuffer(data, dtype=FLOAT64).astype(np.float64)

    def expect_end(self):
        if self.remaining() != 0:
            raise IOFailure(f"{self.path}: {self.remaining()} unexpected trailing bytes")
