import os
import socket
from errno import ECONNABORTED, EINTR, EMFILE

from twisted.internet import defer, reactor
from twisted.internet.endpoints import TCP4ClientEndpoint, connectProtocol
from twisted.internet.error import CannotListenError
from twisted.internet.protocol import Protocol
from twisted.python import log
from twisted.trial import unittest

from flashpolicyd.factory import PolicyFactory
from flashpolicyd.logger import Logger
from flashpolicyd.policy import MAX_POLICY_LEN, Policy, load_policy
from flashpolicyd.port import BACKLOG, PolicyPort, listen
from flashpolicyd.protocol import PolicyProtocol

POLICY = (b'<?xml version="1.0"?><cross-domain-policy>'
    b'<allow-access-from domain="*" /></cross-domain-policy>')

class Collector(Protocol):
    """
    Reads until the server hangs up.
    """

    def __init__(self):
        self.data = b""
        self.done = defer.Deferred()

    def dataReceived(self, data):
        self.data += data

    def connectionLost(self, reason):
        self.done.callback(self.data)

class RecordingLogger(Logger):

    def __init__(self):
        Logger.__init__(self, log.LogPublisher())
        self.lines = []
        self.peers = []

    def msg(self, format, *args):
        self.lines.append(format % args if args else format)

    def peer(self, address):
        self.peers.append(address.port)
        Logger.peer(self, address)

class WatchedProtocol(PolicyProtocol):
    """
    Records what the listening port was doing at each step of a connection.
    """

    def record(self, event):
        port = self.factory.port
        self.factory.events.append((event, self.transport.getPeer().port,
            port.paused, port in reactor.getReaders()))

    def connectionMade(self):
        self.record("made")
        PolicyProtocol.connectionMade(self)

    def connectionLost(self, reason):
        self.record("lost")
        PolicyProtocol.connectionLost(self, reason)
        self.record("finished")

class WatchedFactory(PolicyFactory):
    protocol = WatchedProtocol

    def __init__(self, policy, logger):
        PolicyFactory.__init__(self, policy, logger)
        self.events = []

class TestPolicyPort(unittest.TestCase):

    def setUp(self):
        self.logger = RecordingLogger()
        self.failures = []

    def serve(self, policy, factory_class=PolicyFactory):
        self.factory = factory_class(policy, self.logger)
        self.port = listen(0, self.factory, interface="127.0.0.1",
            on_failure=self.failures.append)
        self.addCleanup(self.port.stopListening)
        return self.port.getHost().port

    def fetch(self, portno):
        endpoint = TCP4ClientEndpoint(reactor, "127.0.0.1", portno)
        d = connectProtocol(endpoint, Collector())
        d.addCallback(lambda collector: collector.done)
        return d

    def test_trivial(self):
        pass

    def test_backlog(self):
        self.serve(Policy(POLICY))
        self.assertEqual(self.port.backlog, BACKLOG)
        self.assertEqual(BACKLOG, 5)

    def test_reuseaddr(self):
        self.serve(Policy(POLICY))
        self.assertTrue(self.port.socket.getsockopt(socket.SOL_SOCKET,
            socket.SO_REUSEADDR))

    def test_serve(self):
        portno = self.serve(Policy(POLICY))
        d = self.fetch(portno)
        d.addCallback(self.assertEqual, POLICY)
        return d

    def test_serve_from_file(self):
        path = self.mktemp()
        with open(path, "wb") as f:
            f.write(POLICY)
        portno = self.serve(load_policy(path))

        d = self.fetch(portno)
        d.addCallback(self.assertEqual, POLICY)
        return d

    def test_serve_empty(self):
        portno = self.serve(Policy(b""))
        d = self.fetch(portno)
        d.addCallback(self.assertEqual, b"")
        return d

    def test_serve_large(self):
        data = os.urandom(MAX_POLICY_LEN)
        portno = self.serve(Policy(data))
        d = self.fetch(portno)
        d.addCallback(self.assertEqual, data)
        return d

    @defer.inlineCallbacks
    def test_sequential_clients(self):
        portno = self.serve(Policy(POLICY))

        first = yield self.fetch(portno)
        second = yield self.fetch(portno)

        self.assertEqual(first, POLICY)
        self.assertEqual(second, POLICY)
        self.assertEqual(self.factory.served, 2)

    @defer.inlineCallbacks
    def test_one_line_per_connection(self):
        portno = self.serve(Policy(POLICY))

        yield self.fetch(portno)
        self.assertEqual(self.logger.lines, ["Connection from 127.0.0.1"])

        yield self.fetch(portno)
        self.assertEqual(self.logger.lines,
            ["Connection from 127.0.0.1"] * 2)

    @defer.inlineCallbacks
    def test_paused_while_serving(self):
        portno = self.serve(Policy(POLICY), WatchedFactory)

        yield self.fetch(portno)

        made, lost, finished = self.factory.events
        # Not accepting while the connection is open...
        self.assertEqual(made[0], "made")
        self.assertEqual(made[2:], (True, False))
        self.assertEqual(lost[0], "lost")
        self.assertEqual(lost[2:], (True, False))
        # ...and accepting again once it's gone.
        self.assertEqual(finished[0], "finished")
        self.assertEqual(finished[2:], (False, True))
        self.assertFalse(self.port.paused)
        self.assertIn(self.port, reactor.getReaders())

    @defer.inlineCallbacks
    def test_queued_clients_served_in_connect_order(self):
        portno = self.serve(Policy(POLICY), WatchedFactory)

        # Both clients finish connecting while nothing is being accepted, so
        # they wait together in the listen queue.
        self.port.pause()
        endpoint = TCP4ClientEndpoint(reactor, "127.0.0.1", portno)
        first = yield connectProtocol(endpoint, Collector())
        second = yield connectProtocol(endpoint, Collector())
        ports = [c.transport.getHost().port for c in (first, second)]
        self.port.resume()

        results = yield defer.gatherResults([first.done, second.done])

        self.assertEqual(results, [POLICY, POLICY])
        self.assertEqual(self.factory.served, 2)
        self.assertEqual(self.logger.peers, ports)
        self.assertEqual(self.logger.lines, ["Connection from 127.0.0.1"] * 2)
        self.assertEqual([event[:2] for event in self.factory.events], [
            ("made", ports[0]),
            ("lost", ports[0]),
            ("finished", ports[0]),
            ("made", ports[1]),
            ("lost", ports[1]),
            ("finished", ports[1]),
        ])

    def test_pause_resume(self):
        self.serve(Policy(POLICY))

        self.port.pause()
        self.assertTrue(self.port.paused)
        self.assertNotIn(self.port, reactor.getReaders())

        self.port.resume()
        self.assertFalse(self.port.paused)
        self.assertIn(self.port, reactor.getReaders())

    def test_resume_not_paused(self):
        self.serve(Policy(POLICY))
        self.port.resume()
        self.assertIn(self.port, reactor.getReaders())

    def test_cannot_listen(self):
        portno = self.serve(Policy(POLICY))
        factory = PolicyFactory(Policy(POLICY), self.logger)

        # SO_REUSEADDR doesn't allow two listeners on one port.
        self.assertRaises(CannotListenError, listen, portno, factory,
            interface="127.0.0.1")

    def test_stop_listening_is_not_a_failure(self):
        self.serve(Policy(POLICY))
        d = self.port.stopListening()
        d.addCallback(lambda ignored: self.assertEqual(self.failures, []))
        d.addCallback(lambda ignored: self.assertIsNone(self.factory.port))
        return d

class FailingSocket(object):
    """
    Listening socket whose accept() always fails.
    """

    def __init__(self, errno):
        self.errno = errno

    def accept(self):
        raise OSError(self.errno, os.strerror(self.errno))

class TestAcceptErrors(unittest.TestCase):

    def setUp(self):
        self.logger = RecordingLogger()
        self.factory = PolicyFactory(Policy(POLICY), self.logger)
        self.port = PolicyPort(0, self.factory)

    def test_transient(self):
        self.port.socket = FailingSocket(EINTR)
        self.assertIsNone(self.port.doRead())
        self.assertEqual(self.logger.lines, ["accept: %s" % os.strerror(EINTR)])

    def test_fatal(self):
        self.port.socket = FailingSocket(EMFILE)
        why = self.port.doRead()
        self.assertIsInstance(why, OSError)
        self.assertEqual(why.errno, EMFILE)
        self.assertEqual(self.logger.lines,
            ["accept: %s" % os.strerror(EMFILE)])

    def test_aborted_is_fatal(self):
        self.port.socket = FailingSocket(ECONNABORTED)
        self.assertIsInstance(self.port.doRead(), OSError)
