"""Notification routing — fans user-visible notifications out to sinks.

Warnings (collection emptied, async trigger failed) and transient errors
(edition sale rollback) are dispatched to every registered sink: the
logging sink, an in-memory sink for UIs and tests, or any custom sink
implementing the ``NotificationSink`` protocol.
"""
