import sys

from twisted.python import usage

from flashpolicyd.daemon import PolicyDaemon
from flashpolicyd.port import DEFAULT_PORT

def parse_port(value):
    port = int(value)
    if not 0 < port < 65536:
        raise ValueError("Invalid port %s" % value)
    return port

class Options(usage.Options):

    synopsis = "Usage: flashpolicyd -f POLICY [-p PORT] [-d] [-l FILE]"

    optFlags = [
        ["daemon", "d", "Fork into the background"],
    ]

    optParameters = [
        ["file", "f", None, "Policy file to serve"],
        ["port", "p", DEFAULT_PORT, "Port to listen on", parse_port],
        ["logfile", "l", None, "Append log lines to FILE instead of stdout"],
    ]

    def postOptions(self):
        if not self["file"]:
            raise usage.UsageError("Missing required policy file argument -f")

def main(argv=None, reactor=None, stderr=None):
    """
    Parse the command line and run the daemon, returning the exit status.
    """

    stderr = stderr or sys.stderr
    config = Options()

    try:
        config.parseOptions(argv)
    except usage.UsageError as e:
        stderr.write("%s\n%s" % (e, config))
        return 1

    daemon = PolicyDaemon(config["file"], port=config["port"],
        logfile=config["logfile"], reactor=reactor)
    return daemon.run(daemonize=config["daemon"])

def run():
    sys.exit(main())
