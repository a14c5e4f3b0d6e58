import socket
from errno import EAGAIN, EINTR, EWOULDBLOCK

from twisted.internet import address, base, tcp
from twisted.internet.error import ConnectionDone

DEFAULT_PORT = 843
BACKLOG = 5

# accept() errors which only mean "try again later".
TRANSIENT_ERRORS = (EINTR, EAGAIN, EWOULDBLOCK)

class SocketCreationError(OSError):
    """
    The listening socket itself couldn't be created.
    """

class PolicyPort(tcp.Port):
    """
    Listening TCP port which accepts one connection at a time.

    After each accept the port stops reading until the factory reports the
    connection finished, so clients are served strictly in order. Transient
    accept errors are logged and retried; anything else disconnects the port
    and is reported to ``on_failure``.
    """

    def __init__(self, port, factory, backlog=BACKLOG, interface="",
                 reactor=None, on_failure=None):
        tcp.Port.__init__(self, port, factory, backlog, interface, reactor)
        self.on_failure = on_failure
        self.paused = False

    def createInternetSocket(self):
        try:
            s = base.BasePort.createInternetSocket(self)
        except OSError as e:
            raise SocketCreationError(e.errno, e.strerror)

        try:
            s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        except OSError as e:
            self.factory.logger.warning("setsockopt: %s", e.strerror or e)
        return s

    def startListening(self):
        tcp.Port.startListening(self)
        self.factory.port = self

    def doRead(self):
        try:
            skt, addr = self.socket.accept()
        except OSError as e:
            self.factory.logger.error("accept", e)
            if e.errno in TRANSIENT_ERRORS:
                return None
            return e

        self.pause()

        peer = address.IPv4Address("TCP", addr[0], addr[1])
        protocol = self.factory.buildProtocol(peer)
        if protocol is None:
            skt.close()
            self.resume()
            return None

        s = self.sessionno
        self.sessionno = s + 1
        transport = self.transport(skt, protocol, addr, self, s,
            self.reactor)
        protocol.makeConnection(transport)

    def pause(self):
        """
        Stop accepting until resume() is called.
        """

        self.paused = True
        self.stopReading()

    def resume(self):
        if not self.paused:
            return

        self.paused = False
        if self.connected and not self.disconnecting:
            self.startReading()

    def connectionLost(self, reason):
        if self.factory.port is self:
            self.factory.port = None
        tcp.Port.connectionLost(self, reason)

        if not reason.check(ConnectionDone) and self.on_failure is not None:
            self.on_failure(reason)

def listen(port, factory, interface="", backlog=BACKLOG, reactor=None,
           on_failure=None):
    """
    Bind a PolicyPort and start accepting connections on it.

    Raises CannotListenError if the socket can't be created or bound.
    """

    p = PolicyPort(port, factory, backlog, interface, reactor, on_failure)
    p.startListening()
    return p
