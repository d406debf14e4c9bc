"""ORM Models — SQLAlchemy declarative models for the social layer.

Invariants:
    - All models inherit from Base (db/base.py)
    - Every row is scoped by organization_id (directly or through its post)

Design Decisions:
    - One file per entity for locality
    - All models imported here so SQLAlchemy resolves string-based relationship()
      references before any query runs
"""

from engage.models.organization import Organization  # noqa: F401
from engage.models.member import MemberRecord  # noqa: F401
from engage.models.social_post import SocialPost  # noqa: F401
from engage.models.post_reaction import PostReaction  # noqa: F401
from engage.models.poll_vote import PollVoteRecord  # noqa: F401
from engage.models.comment import CommentRecord  # noqa: F401
from engage.models.comment_reaction import CommentReaction  # noqa: F401
from engage.models.audit_log import AuditLog  # noqa: F401
from engage.models.notification import NotificationRecord  # noqa: F401
