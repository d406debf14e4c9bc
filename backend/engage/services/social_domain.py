"""Social Domain — validation and orchestration for posts, comments, reactions and polls.

Invariants:
    - Every operation is organization-scoped: cross-organization access raises
      OrganizationMismatchError before anything is written
    - Events are published only AFTER the storage write succeeded
    - Mentions resolve to active members of the same organization; unknown
      handles are dropped, self-mentions never publish user_mentioned
    - A milestone is published at most once per post (tracked in reached_milestones)
    - validate_social_rules never raises

Design Decisions:
    - Storage and directory injected as Protocols (core/repository_protocols.py):
      the same domain runs over the relational and the in-memory document store
    - Inputs accepted as schema instances or plain dicts; dicts are validated here
      so programmatic callers get the same rules as HTTP callers
    - Clock injected: poll expiry and timestamps are deterministic in tests
"""

import functools
import logging
from typing import Callable
from uuid import UUID

from pydantic import BaseModel, ValidationError

from engage.core.domain_types import PostType, SocialOperation, TargetType
from engage.core.errors import (
    EngageError,
    ErrorContext,
    NotAPollError,
    OrganizationMismatchError,
    ResourceNotFoundError,
    SocialValidationError,
)
from engage.core.repository_protocols import MemberDirectory, SocialRepository
from engage.core.social_entities import (
    Comment, Member, Mention, PollVote, Post, PostFilterSpec, Reaction,
    RecognitionData, utcnow,
)
from engage.core.social_events import (
    comment_added_event,
    engagement_milestone_event,
    poll_vote_cast_event,
    post_created_event,
    post_deleted_event,
    reaction_added_event,
    reaction_removed_event,
    user_mentioned_event,
)
from engage.core.social_rules import (
    EngagementThresholds,
    check_post_rules,
    check_vote_allowed,
    engagement_metrics,
    evaluate_milestones,
    extract_mentions,
    find_reaction,
    find_vote,
    is_poll_expired,
    require_delete_permission,
    require_live_post,
    require_member_of,
    require_same_organization,
    tally_poll,
)
from engage.infrastructure.event_system import EventSystem
from engage.schemas.social import (
    CommentCreate,
    CommentReactionCreate,
    PollVoteCreate,
    PostCreate,
    PostFilters,
    ReactionCreate,
)

logger = logging.getLogger(__name__)

_OPERATION_SCHEMAS: dict[SocialOperation, type[BaseModel]] = {
    SocialOperation.CREATE_POST: PostCreate,
    SocialOperation.ADD_COMMENT: CommentCreate,
    SocialOperation.ADD_REACTION: ReactionCreate,
    SocialOperation.VOTE_POLL: PollVoteCreate,
}


def _parse(schema: type[BaseModel], data):
    """Validate data against schema; pydantic errors become SocialValidationError."""
    if isinstance(data, schema):
        return data
    try:
        return schema.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or None
        raise SocialValidationError(first["msg"], field=field)


def _logged(operation: str):
    """Log rejected and failed operations, then re-raise unchanged."""
    def decorate(fn):
        @functools.wraps(fn)
        async def wrapper(self, *args, **kwargs):
            try:
                return await fn(self, *args, **kwargs)
            except EngageError as e:
                logger.warning(
                    f"{operation} rejected: {e.message}",
                    extra={
                        "error_code": e.code,
                        "organization_id": e.context.organization_id,
                    },
                )
                raise
            except Exception as e:
                logger.error(f"{operation} failed: {e}", exc_info=True)
                raise
        return wrapper
    return decorate


class SocialDomain:
    """Social feed business rules over injected storage, directory and event system."""

    def __init__(
        self,
        store: SocialRepository,
        members: MemberDirectory,
        events: EventSystem,
        thresholds: EngagementThresholds | None = None,
        clock: Callable = utcnow,
    ):
        self._store = store
        self._members = members
        self._events = events
        self._thresholds = thresholds or EngagementThresholds()
        self._clock = clock

    # ─── Posts ──────────────────────────────────────────────────

    @_logged("create_post")
    async def create_post(
        self, data, author_id: int, organization_id: int,
        correlation_id: str | None = None,
    ) -> Post:
        payload: PostCreate = _parse(PostCreate, data)
        now = self._clock()
        author = require_member_of(
            await self._members.get_member(author_id), organization_id, "author",
        )

        recognition = None
        if payload.recognition is not None:
            recognition = RecognitionData(**payload.recognition.model_dump())
        check_post_rules(
            payload.type, payload.poll_options, payload.poll_expires_at,
            recognition, now,
        )
        if payload.type == PostType.RECOGNITION:
            await self._require_recognition_recipient(recognition, organization_id)

        is_poll = payload.type == PostType.POLL
        post = Post(
            organization_id=organization_id,
            author_id=author.id,
            author_name=author.name,
            author_avatar=author.avatar_url,
            content=payload.content,
            type=payload.type,
            visibility=payload.visibility,
            image_url=str(payload.image_url) if payload.image_url else None,
            tags=list(payload.tags or []),
            poll_options=list(payload.poll_options) if is_poll else None,
            poll_expires_at=payload.poll_expires_at if is_poll else None,
            recognition=recognition if payload.type == PostType.RECOGNITION else None,
            mentions=await self._resolve_mentions(payload.content, organization_id),
            created_at=now,
            updated_at=now,
        )
        stored = await self._store.persist_post(post)

        await self._events.publish(post_created_event(stored, author, correlation_id))
        await self._publish_mentions(
            stored.mentions, author, organization_id,
            content_type=TargetType.POST, content_id=str(stored.id),
            content=stored.content, post_id=str(stored.id),
            correlation_id=correlation_id,
        )
        logger.info(
            f"Social post created: {stored.type.value}",
            extra={
                "post_id": str(stored.id), "user_id": author.id,
                "organization_id": organization_id,
            },
        )
        return stored

    async def _require_recognition_recipient(
        self, recognition: RecognitionData, organization_id: int,
    ) -> None:
        recipient = await self._members.get_member(recognition.recipient_id)
        if recipient is None or recipient.organization_id != organization_id:
            raise OrganizationMismatchError(
                "Recognition recipient must be from the same organization",
                ErrorContext(
                    organization_id=organization_id,
                    user_id=recognition.recipient_id,
                ),
            )

    @_logged("get_post")
    async def get_post(self, post_id: UUID, organization_id: int) -> Post:
        """Fetch a live post and count the view."""
        post = await self._live_post(post_id)
        require_same_organization(
            post.organization_id, organization_id,
            "Cannot view posts from other organizations",
        )
        await self._store.increment_view_count(post.id)
        post.views_count += 1
        await self.check_engagement(post.id)
        return post

    @_logged("list_posts")
    async def list_posts(self, organization_id: int, filters=None) -> list[Post]:
        criteria: PostFilters = _parse(PostFilters, filters or {})
        spec = PostFilterSpec(**criteria.model_dump())
        return await self._store.list_posts(organization_id, spec)

    @_logged("delete_post")
    async def delete_post(
        self, post_id: UUID, deleted_by: int, organization_id: int,
        reason: str | None = None, correlation_id: str | None = None,
    ) -> bool:
        member = require_member_of(
            await self._members.get_member(deleted_by), organization_id,
        )
        post = await self._live_post(post_id)
        require_same_organization(
            post.organization_id, organization_id,
            "Cannot delete posts from other organizations",
        )
        is_author = require_delete_permission(member, post.author_id)

        now = self._clock()
        deleted = await self._store.soft_delete_post(post.id, member.id, now)
        if deleted:
            await self._events.publish(post_deleted_event(
                post, member, is_author, reason, now, correlation_id,
            ))
            logger.info(
                "Social post deleted",
                extra={
                    "post_id": str(post.id), "user_id": member.id,
                    "organization_id": organization_id,
                },
            )
        return deleted

    # ─── Comments ───────────────────────────────────────────────

    @_logged("add_comment")
    async def add_comment(
        self, post_id: UUID, data, author_id: int, organization_id: int,
        correlation_id: str | None = None,
    ) -> Comment:
        payload: CommentCreate = _parse(CommentCreate, data)
        author = require_member_of(
            await self._members.get_member(author_id), organization_id, "author",
        )
        post = await self._live_post(post_id)
        require_same_organization(
            post.organization_id, organization_id,
            "Cannot comment on posts from other organizations",
        )
        if payload.parent_comment_id is not None:
            parent = await self._store.get_comment(payload.parent_comment_id)
            if parent is None or parent.is_deleted or parent.post_id != post.id:
                raise SocialValidationError(
                    "Parent comment must belong to the same post",
                    field="parent_comment_id",
                )

        now = self._clock()
        comment = Comment(
            post_id=post.id,
            organization_id=organization_id,
            author_id=author.id,
            author_name=author.name,
            author_avatar=author.avatar_url,
            content=payload.content,
            parent_comment_id=payload.parent_comment_id,
            mentions=await self._resolve_mentions(payload.content, organization_id),
            created_at=now,
            updated_at=now,
        )
        stored = await self._store.persist_comment(comment)

        await self._events.publish(
            comment_added_event(stored, post, author, correlation_id),
        )
        await self._publish_mentions(
            stored.mentions, author, organization_id,
            content_type=TargetType.COMMENT, content_id=str(stored.id),
            content=stored.content, post_id=str(post.id),
            comment_id=str(stored.id), correlation_id=correlation_id,
        )
        await self.check_engagement(post.id, correlation_id)
        logger.info(
            "Comment added",
            extra={
                "post_id": str(post.id), "comment_id": str(stored.id),
                "user_id": author.id, "organization_id": organization_id,
            },
        )
        return stored

    @_logged("list_comments")
    async def list_comments(
        self, post_id: UUID, organization_id: int,
    ) -> list[Comment]:
        post = await self._live_post(post_id)
        require_same_organization(
            post.organization_id, organization_id,
            "Cannot view comments from other organizations",
        )
        return await self._store.list_comments(post.id)

    @_logged("delete_comment")
    async def delete_comment(
        self, comment_id: UUID, deleted_by: int, organization_id: int,
    ) -> bool:
        member = require_member_of(
            await self._members.get_member(deleted_by), organization_id,
        )
        comment = await self._live_comment(comment_id)
        require_same_organization(
            comment.organization_id, organization_id,
            "Cannot delete comments from other organizations",
        )
        require_delete_permission(member, comment.author_id)
        deleted = await self._store.soft_delete_comment(
            comment.id, member.id, self._clock(),
        )
        if deleted:
            logger.info(
                "Comment deleted",
                extra={
                    "comment_id": str(comment.id), "user_id": member.id,
                    "organization_id": organization_id,
                },
            )
        return deleted

    # ─── Reactions ──────────────────────────────────────────────

    @_logged("add_post_reaction")
    async def add_post_reaction(
        self, post_id: UUID, data, user_id: int, organization_id: int,
        correlation_id: str | None = None,
    ) -> dict:
        """Set the user's reaction, replacing any earlier one."""
        payload: ReactionCreate = _parse(ReactionCreate, data)
        user = require_member_of(
            await self._members.get_member(user_id), organization_id,
        )
        post = await self._live_post(post_id)
        require_same_organization(
            post.organization_id, organization_id,
            "Cannot react to posts from other organizations",
        )
        previous = find_reaction(post.reactions, user.id)
        reaction = Reaction(
            user_id=user.id, user_name=user.name,
            type=payload.type.value, created_at=self._clock(),
        )
        await self._store.set_post_reaction(post.id, reaction)

        previous_type = previous.type if previous else None
        await self._events.publish(reaction_added_event(
            target_type=TargetType.POST.value,
            target_id=str(post.id),
            target_author_id=post.author_id,
            target_author_name=post.author_name,
            organization_id=organization_id,
            reactor=user,
            reaction_type=reaction.type,
            previous_reaction=previous_type,
            reacted_at=reaction.created_at,
            correlation_id=correlation_id,
        ))
        await self.check_engagement(post.id, correlation_id)
        return {"reaction": reaction.type, "previous_reaction": previous_type}

    @_logged("remove_post_reaction")
    async def remove_post_reaction(
        self, post_id: UUID, user_id: int, organization_id: int,
        correlation_id: str | None = None,
    ) -> bool:
        user = require_member_of(
            await self._members.get_member(user_id), organization_id,
        )
        post = await self._live_post(post_id)
        require_same_organization(
            post.organization_id, organization_id,
            "Cannot react to posts from other organizations",
        )
        existing = find_reaction(post.reactions, user.id)
        removed = await self._store.remove_post_reaction(post.id, user.id)
        if removed and existing is not None:
            await self._events.publish(reaction_removed_event(
                target_type=TargetType.POST.value,
                target_id=str(post.id),
                organization_id=organization_id,
                reactor=user,
                removed_reaction=existing.type,
                correlation_id=correlation_id,
            ))
        return removed

    @_logged("add_comment_reaction")
    async def add_comment_reaction(
        self, comment_id: UUID, data, user_id: int, organization_id: int,
        correlation_id: str | None = None,
    ) -> dict:
        payload: CommentReactionCreate = _parse(CommentReactionCreate, data)
        user = require_member_of(
            await self._members.get_member(user_id), organization_id,
        )
        comment = await self._live_comment(comment_id)
        require_same_organization(
            comment.organization_id, organization_id,
            "Cannot react to comments from other organizations",
        )
        previous = find_reaction(comment.reactions, user.id)
        reaction = Reaction(
            user_id=user.id, user_name=user.name,
            type=payload.type.value, created_at=self._clock(),
        )
        await self._store.set_comment_reaction(comment.id, reaction)

        previous_type = previous.type if previous else None
        await self._events.publish(reaction_added_event(
            target_type=TargetType.COMMENT.value,
            target_id=str(comment.id),
            target_author_id=comment.author_id,
            target_author_name=comment.author_name,
            organization_id=organization_id,
            reactor=user,
            reaction_type=reaction.type,
            previous_reaction=previous_type,
            reacted_at=reaction.created_at,
            correlation_id=correlation_id,
        ))
        return {"reaction": reaction.type, "previous_reaction": previous_type}

    # ─── Polls ──────────────────────────────────────────────────

    @_logged("cast_poll_vote")
    async def cast_poll_vote(
        self, post_id: UUID, data, user_id: int, organization_id: int,
        correlation_id: str | None = None,
    ) -> dict:
        """Record the user's vote; re-voting replaces the earlier option."""
        payload: PollVoteCreate = _parse(PollVoteCreate, data)
        voter = require_member_of(
            await self._members.get_member(user_id), organization_id,
        )
        post = await self._live_post(post_id)
        require_same_organization(
            post.organization_id, organization_id,
            "Cannot vote on polls from other organizations",
        )
        now = self._clock()
        check_vote_allowed(post, payload.option, now)

        previous = find_vote(post.poll_votes, voter.id)
        vote = PollVote(
            user_id=voter.id, user_name=voter.name,
            option=payload.option, voted_at=now,
        )
        await self._store.cast_poll_vote(post.id, vote)

        previous_option = previous.option if previous else None
        await self._events.publish(poll_vote_cast_event(
            post, voter, vote.option, previous_option, now, correlation_id,
        ))
        return {
            "option": vote.option,
            "previous_option": previous_option,
            "is_first_vote": previous_option is None,
        }

    @_logged("poll_results")
    async def poll_results(self, post_id: UUID, organization_id: int) -> dict:
        post = await self._live_post(post_id)
        require_same_organization(
            post.organization_id, organization_id,
            "Cannot view polls from other organizations",
        )
        if not post.is_poll:
            raise NotAPollError(ErrorContext(resource_id=str(post.id)))
        return {
            "post_id": post.id,
            **tally_poll(post),
            "expires_at": post.poll_expires_at,
            "is_expired": is_poll_expired(post, self._clock()),
        }

    # ─── Engagement ─────────────────────────────────────────────

    async def check_engagement(
        self, post_id: UUID, correlation_id: str | None = None,
    ) -> list[dict]:
        """Publish engagement_milestone for each threshold newly crossed."""
        post = await self._store.get_post(post_id)
        if post is None or post.is_deleted:
            return []
        metrics = engagement_metrics(post)
        reached = evaluate_milestones(
            metrics, self._thresholds, post.reached_milestones,
        )
        if not reached:
            return []
        await self._store.record_milestones(
            post.id, [m["type"] for m in reached],
        )
        for milestone in reached:
            await self._events.publish(engagement_milestone_event(
                post, milestone, metrics, correlation_id,
            ))
            logger.info(
                f"Engagement milestone reached: {milestone['type']}",
                extra={
                    "post_id": str(post.id),
                    "organization_id": post.organization_id,
                },
            )
        return reached

    # ─── Validation ─────────────────────────────────────────────

    async def validate_social_rules(
        self, operation: str, data, user_id: int, organization_id: int,
    ) -> dict:
        """Dry-run validation for an operation. Returns {valid, errors}."""
        errors: list[str] = []
        try:
            member = await self._members.get_member(user_id)
            if (
                member is None
                or not member.is_active
                or member.organization_id != organization_id
            ):
                errors.append("User does not have access to this organization")

            try:
                schema = _OPERATION_SCHEMAS[SocialOperation(operation)]
            except ValueError:
                errors.append(f"Unknown operation: {operation}")
                return {"valid": False, "errors": errors}

            try:
                payload = schema.model_validate(data or {})
            except ValidationError as e:
                errors.extend(err["msg"] for err in e.errors())
            else:
                if isinstance(payload, PostCreate):
                    errors.extend(self._post_rule_errors(payload))
            return {"valid": not errors, "errors": errors}
        except Exception as e:
            logger.error(
                f"Error validating social rules: {e}",
                extra={"user_id": user_id, "organization_id": organization_id},
            )
            return {"valid": False, "errors": ["Validation failed"]}

    def _post_rule_errors(self, payload: PostCreate) -> list[str]:
        recognition = None
        if payload.recognition is not None:
            recognition = RecognitionData(**payload.recognition.model_dump())
        try:
            check_post_rules(
                payload.type, payload.poll_options, payload.poll_expires_at,
                recognition, self._clock(),
            )
        except SocialValidationError as e:
            return [e.message]
        return []

    # ─── Helpers ────────────────────────────────────────────────

    async def _live_post(self, post_id: UUID) -> Post:
        return require_live_post(await self._store.get_post(post_id), str(post_id))

    async def _live_comment(self, comment_id: UUID) -> Comment:
        comment = await self._store.get_comment(comment_id)
        if comment is None or comment.is_deleted:
            raise ResourceNotFoundError(
                "Comment", str(comment_id),
                ErrorContext(resource_id=str(comment_id)),
                message="Comment not found or has been deleted",
            )
        return comment

    async def _resolve_mentions(
        self, content: str, organization_id: int,
    ) -> list[Mention]:
        handles = extract_mentions(content)
        if not handles:
            return []
        found = {
            m.username: m
            for m in await self._members.find_members_by_username(
                organization_id, handles,
            )
        }
        return [
            Mention(user_id=found[h].id, username=h, name=found[h].name)
            for h in handles if h in found
        ]

    async def _publish_mentions(
        self,
        mentions: list[Mention],
        author: Member,
        organization_id: int,
        *,
        content_type: TargetType,
        content_id: str,
        content: str,
        post_id: str,
        comment_id: str | None = None,
        correlation_id: str | None = None,
    ) -> None:
        for mention in mentions:
            if mention.user_id == author.id:
                continue
            await self._events.publish(user_mentioned_event(
                mention=mention,
                mentioned_by=author,
                organization_id=organization_id,
                content_type=content_type.value,
                content_id=content_id,
                content=content,
                post_id=post_id,
                comment_id=comment_id,
                correlation_id=correlation_id,
            ))
