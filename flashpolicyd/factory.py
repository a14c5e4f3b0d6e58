from twisted.internet.protocol import ServerFactory

from flashpolicyd.protocol import PolicyProtocol

class PolicyFactory(ServerFactory):
    """
    Builds a PolicyProtocol for every accepted connection.

    The factory holds the loaded policy and the logger, and tells its
    listening port when a connection is done so the next one may be
    accepted.
    """

    protocol = PolicyProtocol
    noisy = False

    def __init__(self, policy, logger):
        self.policy = policy
        self.logger = logger
        self.port = None
        self.served = 0

    def connection_finished(self, protocol):
        self.served += 1
        if self.port is not None:
            self.port.resume()
