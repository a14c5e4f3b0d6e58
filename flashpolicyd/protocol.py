from twisted.internet.error import ConnectionDone
from twisted.internet.protocol import Protocol

class PolicyProtocol(Protocol):
    """
    Write-only protocol which sends the policy and hangs up.

    Nothing the client sends is ever looked at.
    """

    def connectionMade(self):
        self.factory.logger.peer(self.transport.getPeer())
        self.transport.write(self.factory.policy.data)
        # Closes once the write buffer has drained.
        self.transport.loseConnection()

    def dataReceived(self, data):
        pass

    def connectionLost(self, reason):
        if not reason.check(ConnectionDone):
            self.factory.logger.error("write", reason)
        self.factory.connection_finished(self)
