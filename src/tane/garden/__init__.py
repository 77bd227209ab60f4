"""Seed lifecycle: nursery poller, gardener, and the garden repository.

A seed moves ``pending -> processing -> completed | failed``. The nursery
claims one pending seed per tick with a conditional update, so exactly one
gardener run owns a seed while it is ``processing``. Regenerate resets a
finished seed back to ``pending`` and the cycle starts over.
"""
