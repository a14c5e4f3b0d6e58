import os
import sys
import time

from twisted.python import log, util

from flashpolicyd import __version__

TIME_PLACEHOLDER = "----/--/-- --:--:-- -----"

def format_time(when):
    """
    Format a timestamp as ``YYYY/MM/DD HH:MM:SS +ZZZZ`` in local time.

    If the timestamp can't be converted, every field is replaced with dashes.
    """

    try:
        t = time.localtime(when)
    except (OverflowError, OSError, ValueError):
        return TIME_PLACEHOLDER

    offset = t.tm_gmtoff // 60
    sign = "-" if offset < 0 else "+"
    hours, minutes = divmod(abs(offset), 60)

    return "%s %s%02d%02d" % (time.strftime("%Y/%m/%d %H:%M:%S", t), sign,
        hours, minutes)

def describe(error):
    """
    Turn an exception or Failure into a human-readable description.
    """

    if hasattr(error, "value"):
        error = error.value

    errno = getattr(error, "errno", None)
    if errno:
        return os.strerror(errno)

    return str(error) or error.__class__.__name__

class PolicyLogObserver(log.FileLogObserver):
    """
    Log observer which writes one bracketed, timestamped line per event and
    flushes after every line.
    """

    def formatTime(self, when):
        return format_time(when)

    def emit(self, eventDict):
        text = log.textFromEventDict(eventDict)
        if text is None:
            return

        line = "[%s] %s\n" % (self.formatTime(eventDict["time"]),
            text.replace("\n", "\n\t"))

        util.untilConcludes(self.write, line)
        util.untilConcludes(self.flush)

class Logger(object):
    """
    Append-only event log.

    Messages are published on ``publisher``; once the log is opened, a
    PolicyLogObserver on that publisher writes them to a file or to stdout.
    """

    def __init__(self, publisher=None, stdout=None, stderr=None):
        if publisher is None:
            publisher = log.LogPublisher()

        self.publisher = publisher
        self.stdout = stdout or sys.stdout
        self.stderr = stderr or sys.stderr

        self.observer = None
        self.logfile = None

    @property
    def opened(self):
        return self.observer is not None

    def open(self, path=None):
        """
        Start writing log lines.

        Lines are appended to ``path`` if it's given and can be opened, and
        written to stdout otherwise.
        """

        if self.opened:
            self.warning("log already open, ignoring")
            return

        f = self.stdout
        if path:
            try:
                self.logfile = f = open(path, "a")
            except OSError as e:
                self.stderr.write("Couldn't open log file %s (%s), "
                    "logging to stdout\n" % (path, describe(e)))
                f = self.stdout

        self.observer = PolicyLogObserver(f)
        self.publisher.addObserver(self.observer.emit)

        self.msg("flashpolicyd %s starting (pid %d)", __version__,
            os.getpid())

    def close(self):
        if not self.opened:
            return

        self.publisher.removeObserver(self.observer.emit)
        self.observer = None

        if self.logfile is not None:
            self.logfile.close()
            self.logfile = None

    def msg(self, format, *args):
        if args:
            format = format % args
        self.publisher.msg(format)

    def warning(self, format, *args):
        self.msg("warning, " + format, *args)

    def peer(self, address):
        self.msg("Connection from %s", address.host)

    def error(self, syscall, error):
        self.msg("%s: %s", syscall, describe(error))
