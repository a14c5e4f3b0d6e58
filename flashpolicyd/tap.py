"""
Support for running the policy server under twistd.
"""

from twisted.python import log, usage

from flashpolicyd.logger import Logger
from flashpolicyd.policy import PolicyError, load_policy
from flashpolicyd.port import DEFAULT_PORT
from flashpolicyd.service import PolicyService

class Options(usage.Options):

    optParameters = [
        ["file", "f", None, "Policy file to serve"],
        ["port", "p", DEFAULT_PORT, "Port to listen on", int],
        ["interface", "i", "", "Interface to listen on (default: all)"],
    ]

    def postOptions(self):
        if not self["file"]:
            raise usage.UsageError("Missing required policy file argument -f")
        if not 0 < self["port"] < 65536:
            raise usage.UsageError("Invalid port %s" % self["port"])

def makeService(options):
    """
    Load the policy and set up a policy server.

    The policy is read right away, so a bad path stops twistd before it
    daemonizes. Log lines go to twistd's own log.
    """

    try:
        policy = load_policy(options["file"])
    except PolicyError as e:
        raise usage.UsageError(str(e))

    return PolicyService(policy, Logger(log.theLogPublisher),
        port=options["port"], interface=options["interface"])
