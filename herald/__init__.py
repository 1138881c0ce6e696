"""
herald — convention-based notification dispatch.

Sub-packages:
    core/       — config, errors, logging, callback chains, handler base
    jobs/       — queue adapters for deferred delivery
    notifier/   — text-based notification handlers (push, SMS, chat)
    mailer/     — email handlers
    delivery/   — delivery classes fanning one event out to many lines
"""
