import os

def daemonize(devnull=os.devnull):
    """
    Fork into the background.

    Returns the child's pid in the parent and 0 in the child. The child
    starts a new session and has its standard descriptors pointed at
    ``devnull``.
    """

    pid = os.fork()
    if pid:
        return pid

    os.setsid()

    null = os.open(devnull, os.O_RDWR)
    for fd in range(3):
        os.dup2(null, fd)
    if null > 2:
        os.close(null)

    return 0
