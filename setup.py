#!/usr/bin/env python

from setuptools import setup

setup(
    name="flashpolicyd",
    version="1.0.0",
    python_requires='>=3.8',
    packages=[
        "twisted.plugins",
        "flashpolicyd",
        "flashpolicyd.tests",
    ],
    install_requires=[
        "Twisted>=22.10.0",
    ],
    entry_points={
        "console_scripts": [
            "flashpolicyd = flashpolicyd.script:run",
        ],
    },
    author="Corbin Simpson, OSU Open Source Lab",
    author_email="simpsoco@osuosl.org, pypi@osuosl.org",
    description="A Twisted-based Flash policy file server",
    license="GPL2",
)

# Regenerate Twisted plugin cache.
try:
    from twisted.plugin import getPlugins, IPlugin
    list(getPlugins(IPlugin))
except Exception:
    pass
