import io

# Largest policy we are willing to hold. Anything past this is dropped.
MAX_POLICY_LEN = 65536

class PolicyError(Exception):
    """
    The policy file couldn't be opened or read.
    """

    def __init__(self, path, error):
        Exception.__init__(self, path, error)
        self.path = path
        self.error = error

    def __str__(self):
        return "Failed to read policy file %s: %s" % (self.path,
            self.error.strerror or self.error)

class Policy(object):
    """
    An immutable policy buffer.
    """

    def __init__(self, data):
        self._data = bytes(data)

    @property
    def data(self):
        return self._data

    def __len__(self):
        return len(self._data)

    def __repr__(self):
        return "<Policy (%d bytes)>" % len(self._data)

def load_policy(path, limit=MAX_POLICY_LEN):
    """
    Read a policy file into memory.

    The file is read until end of file or until ``limit`` bytes have been
    collected, whichever comes first. Oversized files are truncated rather
    than rejected.
    """

    chunks = []
    size = 0

    try:
        with io.open(path, "rb", buffering=0) as f:
            while size < limit:
                chunk = f.read(limit - size)
                if not chunk:
                    break
                chunks.append(chunk)
                size += len(chunk)
    except OSError as e:
        raise PolicyError(path, e)

    return Policy(b"".join(chunks))
