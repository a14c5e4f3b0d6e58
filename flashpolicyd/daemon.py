import os
import signal
import sys

from twisted.internet.error import CannotListenError
from twisted.python import log

from flashpolicyd.detach import daemonize
from flashpolicyd.factory import PolicyFactory
from flashpolicyd.logger import Logger
from flashpolicyd.policy import PolicyError, load_policy
from flashpolicyd.port import DEFAULT_PORT, SocketCreationError, listen

(
    STATE_INITIALIZING,
    STATE_LISTENING,
    STATE_STOPPING,
    STATE_TERMINATED,
) = range(4)

TERMINATION_SIGNALS = (signal.SIGINT, signal.SIGTERM)

class StartupError(Exception):
    """
    The daemon couldn't get as far as serving.
    """

def signal_name(signum):
    try:
        return signal.Signals(signum).name
    except ValueError:
        return "signal %d" % signum

class PolicyDaemon(object):
    """
    Runs the policy server from startup to exit.

    Signal handlers never do real work themselves: they flip ``running``
    and hand the rest to the reactor with callFromThread, so all logging
    happens on the main loop.
    """

    def __init__(self, policy_path, port=DEFAULT_PORT, logfile=None,
                 logger=None, reactor=None, interface=""):
        if reactor is None:
            from twisted.internet import reactor

        self.policy_path = policy_path
        self.portno = port
        self.logfile = logfile
        self.interface = interface
        self.reactor = reactor

        # Only the daemon's own logger gets Twisted's global log routed to
        # it; a logger handed in by the caller is left alone.
        self.route_twisted_log = logger is None
        self.logger = logger or Logger()

        self.state = STATE_INITIALIZING
        self.running = False
        self.exit_status = 0
        self.policy = None
        self.factory = None
        self.port = None

    def start(self):
        """
        Open the log, load the policy and bind the listener.

        Raises StartupError if the policy can't be read or the port can't be
        bound.
        """

        self.logger.open(self.logfile)
        if self.route_twisted_log:
            log.startLoggingWithObserver(self.logger.observer.emit,
                setStdout=False)

        try:
            self.policy = load_policy(self.policy_path)
        except PolicyError as e:
            self.logger.error("open", e.error)
            raise StartupError("Failed to read policy file")

        self.logger.msg("Loaded %d bytes of policy from %s",
            len(self.policy), self.policy_path)

        self.factory = PolicyFactory(self.policy, self.logger)
        try:
            self.port = listen(self.portno, self.factory,
                interface=self.interface, reactor=self.reactor,
                on_failure=self.listener_failed)
        except CannotListenError as e:
            if isinstance(e.socketError, SocketCreationError):
                self.logger.error("socket", e.socketError)
            else:
                self.logger.error("bind", e.socketError)
            raise StartupError("Failed to create listener")
        except SocketCreationError as e:
            self.logger.error("socket", e)
            raise StartupError("Failed to create listener")
        except OSError as e:
            self.logger.error("listen", e)
            raise StartupError("Failed to create listener")

        self.running = True

    def install_signal_handlers(self):
        for signum in TERMINATION_SIGNALS:
            signal.signal(signum, self.termination_signal)
            signal.siginterrupt(signum, True)

        signal.signal(signal.SIGHUP, self.hangup_signal)
        signal.siginterrupt(signal.SIGHUP, True)

        # Clients hanging up mid-write must not kill us.
        signal.signal(signal.SIGPIPE, signal.SIG_IGN)

    def termination_signal(self, signum, frame):
        self.running = False
        self.reactor.callFromThread(self.stop, signum)

    def hangup_signal(self, signum, frame):
        self.reactor.callFromThread(self.logger.msg,
            "Caught %s, ignoring", signal_name(signum))

    def stop(self, signum=None):
        """
        Stop listening and stop the reactor.

        Only the first call does anything.
        """

        if self.state != STATE_LISTENING:
            return

        self.running = False
        self.state = STATE_STOPPING

        if signum is not None:
            self.logger.msg("Caught %s, exiting", signal_name(signum))
        else:
            self.logger.msg("Exiting")

        if self.port is not None:
            port, self.port = self.port, None
            port.stopListening()

        self.reactor.stop()

    def listener_failed(self, reason):
        self.port = None
        if self.state != STATE_LISTENING:
            return

        self.logger.msg("Accept loop failed, exiting")
        self.exit_status = 1
        self.stop()

    def detach(self, stdout=None):
        """
        Fork into the background. The parent prints the child's pid and
        exits.
        """

        pid = daemonize()
        if pid:
            stdout = stdout or sys.stdout
            stdout.write("%d\n" % pid)
            stdout.flush()
            os._exit(0)

    def run(self, daemonize=False):
        """
        Run the daemon and return its exit status.
        """

        try:
            self.start()
        except StartupError as e:
            sys.stderr.write("%s\n" % e)
            self.close_log()
            self.state = STATE_TERMINATED
            return 1

        if daemonize:
            self.detach()

        self.install_signal_handlers()
        self.state = STATE_LISTENING

        self.reactor.run(installSignalHandlers=False)

        self.state = STATE_TERMINATED
        self.close_log()
        return self.exit_status

    def close_log(self):
        if self.route_twisted_log and self.logger.opened:
            log.removeObserver(self.logger.observer.emit)
        self.logger.close()
