"""PollBridge request/reply broker.

A loopback HTTP bridge that lets a privileged host process issue commands to a
sandboxed runtime which can only poll: the runtime pulls commands from
``/pending`` and pushes results to ``/deliver``, and the host correlates each
result with the caller waiting for it.
"""

__version__ = "0.1.0"
