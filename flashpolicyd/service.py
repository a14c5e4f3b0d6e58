from twisted.application.service import Service

from flashpolicyd.factory import PolicyFactory
from flashpolicyd.port import DEFAULT_PORT, listen

class PolicyService(Service):
    """
    Application service wrapping a PolicyPort, for use under twistd.
    """

    def __init__(self, policy, logger, port=DEFAULT_PORT, interface="",
                 reactor=None):
        self.factory = PolicyFactory(policy, logger)
        self.portno = port
        self.interface = interface
        self.reactor = reactor
        self.listener = None

    def startService(self):
        Service.startService(self)
        self.listener = listen(self.portno, self.factory,
            interface=self.interface, reactor=self.reactor,
            on_failure=self.listener_failed)

    def stopService(self):
        Service.stopService(self)
        if self.listener is not None:
            listener, self.listener = self.listener, None
            return listener.stopListening()

    def listener_failed(self, reason):
        """
        The port died on an accept error; there's nothing left to serve, so
        take the whole process down.
        """

        self.factory.logger.msg("Listener failed, shutting down")
        self.listener = None

        if self.reactor is None:
            from twisted.internet import reactor
        else:
            reactor = self.reactor
        reactor.stop()
