from twisted.application.service import ServiceMaker

flashpolicyd = ServiceMaker(
    "Flash policy server",
    "flashpolicyd.tap",
    "Static Flash policy file server",
    "flashpolicyd")
