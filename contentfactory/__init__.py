"""Content Factory - asynchronous orchestration of AI social-media content jobs.

Runs content-post jobs (topic, plan, image, caption, publish) and multi-scene
video jobs (storyboard, scenes, combine) as background tasks with persisted
progress, cooperative cancellation and real-time progress events.
"""

__version__ = "0.1.0"
