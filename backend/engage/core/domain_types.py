"""Domain Types — rich types that replace bare primitives across the codebase.

Invariants:
    - OrganizationId and UserId wrap ints (relational user table ids)
    - PostId and CommentId wrap UUIDs
    - All valid states encoded as Enums: no raw string matching

Design Decisions:
    - NewType over dataclass wrappers: zero runtime cost, full type-checker support
    - str Enums: serialize to JSON without custom encoders (event payloads are JSON)
"""

from enum import Enum
from typing import NewType
from uuid import UUID


# ─── Identity Types ──────────────────────────────────────────────

OrganizationId = NewType("OrganizationId", int)
UserId = NewType("UserId", int)
PostId = NewType("PostId", UUID)
CommentId = NewType("CommentId", UUID)


# ─── Limits ──────────────────────────────────────────────────────

MAX_POST_LENGTH = 2000
MAX_COMMENT_LENGTH = 1000
MAX_TAGS = 10
MAX_TAG_LENGTH = 50
MIN_POLL_OPTIONS = 2
MAX_POLL_OPTIONS = 10
MAX_POLL_OPTION_LENGTH = 200
MAX_RECOGNITION_POINTS = 1000
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 20

# Audit previews are truncated to this many characters
CONTENT_PREVIEW_LENGTH = 100


# ─── Enums ───────────────────────────────────────────────────────

class PostType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    POLL = "poll"
    RECOGNITION = "recognition"
    ANNOUNCEMENT = "announcement"


class Visibility(str, Enum):
    PUBLIC = "public"
    TEAM = "team"
    DEPARTMENT = "department"


class ReactionType(str, Enum):
    """Reactions allowed on posts. Comments accept a subset."""
    LIKE = "like"
    LOVE = "love"
    CELEBRATE = "celebrate"
    SUPPORT = "support"
    INSIGHTFUL = "insightful"


COMMENT_REACTION_TYPES = frozenset({
    ReactionType.LIKE, ReactionType.LOVE,
    ReactionType.CELEBRATE, ReactionType.SUPPORT,
})


class MemberRole(str, Enum):
    EMPLOYEE = "employee"
    MANAGER = "manager"
    ADMIN = "admin"


class SocialOperation(str, Enum):
    """Operations accepted by validate_social_rules."""
    CREATE_POST = "create_post"
    ADD_COMMENT = "add_comment"
    ADD_REACTION = "add_reaction"
    VOTE_POLL = "vote_poll"


class MilestoneType(str, Enum):
    """Engagement thresholds a post can cross."""
    POST_VIRAL = "post_viral"
    HIGH_ENGAGEMENT = "high_engagement"
    HIGH_REACH = "high_reach"


class TargetType(str, Enum):
    """What a reaction, mention or audit entry points at."""
    POST = "post"
    COMMENT = "comment"
