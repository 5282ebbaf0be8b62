"""
Storage read/write boundary.

Each repository wraps an AsyncSession. Writes are flushed immediately so a
constraint violation surfaces at the call that caused it, as a
ConstraintViolation; committing is left to whoever owns the session.
Rows are refreshed after every write so the caller sees the timestamps the
database stamped.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Generic, Iterable, List, Optional, Type, TypeVar

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.kernel.errors import ConstraintViolation, NotFound
from conduit.kernel.models import (
    Article,
    ArticleTag,
    Base,
    Comment,
    FavoriteArticle,
    Follower,
    User,
)
from conduit.logging_config import get_logger

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=Base)


class Repository(Generic[ModelT]):
    """Shared write path for single-table repositories."""

    model: Type[ModelT]
    # Columns callers may change through update()
    updatable: frozenset[str] = frozenset()

    def __init__(self, session: AsyncSession):
        self.session = session

    @asynccontextmanager
    async def _constraints(self) -> AsyncIterator[None]:
        """
        Run a write in a savepoint, translating integrity errors.

        The savepoint keeps the outer transaction usable after a rejected write.
        """
        try:
            async with self.session.begin_nested():
                yield
        except IntegrityError as exc:
            violation = ConstraintViolation.from_integrity_error(exc)
            logger.debug(
                "Constraint violation",
                extra={
                    "table": self.model.__tablename__,
                    "kind": violation.kind.value,
                    "constraint": violation.constraint,
                },
            )
            raise violation from exc

    async def _add(self, row: ModelT) -> ModelT:
        async with self._constraints():
            self.session.add(row)
            await self.session.flush()
        await self.session.refresh(row)
        return row

    async def get(self, pk: Any) -> ModelT:
        """
        Fetch a row by primary key.

        Raises:
            NotFound: If no row has that key
        """
        row = await self.session.get(self.model, pk, populate_existing=True)
        if row is None:
            raise NotFound(self.model.__name__, pk)
        return row

    async def update(self, row: ModelT, **changes: Any) -> ModelT:
        """
        Apply column changes to a row and write it.

        The row is written even when no value changed, so updated_at always
        moves forward.

        Raises:
            ValueError: If a change names a column that cannot be updated
            ConstraintViolation: If the new values violate a constraint
        """
        unknown = set(changes) - self.updatable
        if unknown:
            raise ValueError(
                f"cannot update {', '.join(sorted(unknown))} on {self.model.__name__}"
            )
        if not changes:
            return await self.touch(row)

        mapper = self.model.__mapper__
        pk_clause = [col == getattr(row, col.key) for col in mapper.primary_key]
        async with self._constraints():
            result = await self.session.execute(
                update(self.model).where(*pk_clause).values(**changes)
                .execution_options(synchronize_session=False)
            )
        if result.rowcount == 0:
            raise NotFound(self.model.__name__, self._identity(row))
        await self.session.refresh(row)
        return row

    async def touch(self, row: ModelT) -> ModelT:
        """Write a row without changing any column; only updated_at moves."""
        mapper = self.model.__mapper__
        pk_clause = [col == getattr(row, col.key) for col in mapper.primary_key]
        # The trigger replaces the assigned value; the statement itself is the write
        result = await self.session.execute(
            update(self.model).where(*pk_clause).values(updated_at=self.model.updated_at)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise NotFound(self.model.__name__, self._identity(row))
        await self.session.refresh(row)
        return row

    def _identity(self, row: ModelT) -> Any:
        keys = tuple(getattr(row, col.key) for col in self.model.__mapper__.primary_key)
        return keys[0] if len(keys) == 1 else keys


class UserRepository(Repository[User]):
    """Users. There is no delete path."""

    model = User
    updatable = frozenset({"username", "email", "password", "bio", "image"})

    async def create(
        self,
        username: str,
        email: str,
        password: str,
        bio: Optional[str] = None,
        image: Optional[str] = None,
    ) -> User:
        """
        Insert a user. `password` must already be hashed.

        Raises:
            ConstraintViolation: If the (username, email) pair is taken
        """
        return await self._add(
            User(username=username, email=email, password=password, bio=bio, image=image)
        )

    async def get_by_email(self, email: str) -> User:
        """
        Raises:
            NotFound: If no user has this email
        """
        return await self._first_where(User.email, email)

    async def get_by_username(self, username: str) -> User:
        """
        Raises:
            NotFound: If no user has this username
        """
        return await self._first_where(User.username, username)

    async def _first_where(self, column: Any, value: str) -> User:
        # Each column is unique only as part of the (username, email) pair
        result = await self.session.execute(select(User).where(column == value).order_by(User.id))
        user = result.scalars().first()
        if user is None:
            raise NotFound("User", value)
        return user


class ArticleRepository(Repository[Article]):
    """Articles, addressed externally by slug."""

    model = Article
    updatable = frozenset({"slug", "title", "description", "body"})

    async def create(
        self,
        author_id: int,
        slug: str,
        title: str,
        description: str,
        body: str,
    ) -> Article:
        """
        Insert an article.

        Raises:
            ConstraintViolation: If the slug is taken or the author does not exist
        """
        return await self._add(
            Article(
                author_id=author_id,
                slug=slug,
                title=title,
                description=description,
                body=body,
            )
        )

    async def get_by_slug(self, slug: str) -> Article:
        result = await self.session.execute(
            select(Article).where(Article.slug == slug).execution_options(populate_existing=True)
        )
        article = result.scalars().first()
        if article is None:
            raise NotFound("Article", slug)
        return article

    async def list_by_author(self, author_id: int, limit: int = 20, offset: int = 0) -> List[Article]:
        result = await self.session.execute(
            select(Article)
            .where(Article.author_id == author_id)
            .order_by(Article.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    async def delete(self, article_id: int) -> None:
        """
        Delete an article. Comments, favorites and tags go with it in the
        same statement.

        Raises:
            NotFound: If the article does not exist
        """
        result = await self.session.execute(delete(Article).where(Article.id == article_id))
        if result.rowcount == 0:
            raise NotFound("Article", article_id)
        logger.info("Deleted article", extra={"article_id": article_id})


class CommentRepository(Repository[Comment]):
    model = Comment

    async def create(self, article_id: int, user_id: int, body: str) -> Comment:
        """
        Raises:
            ConstraintViolation: If the article or user does not exist
        """
        return await self._add(Comment(article_id=article_id, user_id=user_id, body=body))

    async def list_for_article(self, article_id: int) -> List[Comment]:
        result = await self.session.execute(
            select(Comment).where(Comment.article_id == article_id).order_by(Comment.id)
        )
        return list(result.scalars().all())

    async def delete(self, comment_id: int) -> None:
        result = await self.session.execute(delete(Comment).where(Comment.id == comment_id))
        if result.rowcount == 0:
            raise NotFound("Comment", comment_id)


class FavoriteRepository(Repository[FavoriteArticle]):
    model = FavoriteArticle

    async def favorite(self, user_id: int, article_id: int) -> FavoriteArticle:
        """
        Record that a user favorited an article.

        Raises:
            ConstraintViolation: If the pair is already favorited, or either
                side does not exist
        """
        return await self._add(FavoriteArticle(user_id=user_id, article_id=article_id))

    async def unfavorite(self, user_id: int, article_id: int) -> None:
        result = await self.session.execute(
            delete(FavoriteArticle).where(
                FavoriteArticle.user_id == user_id,
                FavoriteArticle.article_id == article_id,
            )
        )
        if result.rowcount == 0:
            raise NotFound("FavoriteArticle", (user_id, article_id))

    async def is_favorited(self, user_id: int, article_id: int) -> bool:
        result = await self.session.execute(
            select(FavoriteArticle.user_id).where(
                FavoriteArticle.user_id == user_id,
                FavoriteArticle.article_id == article_id,
            )
        )
        return result.first() is not None

    async def count_for_article(self, article_id: int) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(FavoriteArticle)
            .where(FavoriteArticle.article_id == article_id)
        )
        return result.scalar_one()


class FollowerRepository(Repository[Follower]):
    model = Follower

    async def follow(self, user_id: int, follower_id: int) -> Follower:
        """
        Raises:
            ConstraintViolation: If already following, following oneself, or
                either user does not exist
        """
        return await self._add(Follower(user_id=user_id, follower_id=follower_id))

    async def unfollow(self, user_id: int, follower_id: int) -> None:
        result = await self.session.execute(
            delete(Follower).where(
                Follower.user_id == user_id,
                Follower.follower_id == follower_id,
            )
        )
        if result.rowcount == 0:
            raise NotFound("Follower", (user_id, follower_id))

    async def is_following(self, user_id: int, follower_id: int) -> bool:
        result = await self.session.execute(
            select(Follower.user_id).where(
                Follower.user_id == user_id,
                Follower.follower_id == follower_id,
            )
        )
        return result.first() is not None


class TagRepository(Repository[ArticleTag]):
    model = ArticleTag

    async def set_tags(self, article_id: int, tag_names: Iterable[str]) -> List[str]:
        """
        Replace the tag set of an article. Returns the sorted tag names.

        Raises:
            ConstraintViolation: If the article does not exist
        """
        names = sorted({name.strip() for name in tag_names if name.strip()})
        async with self._constraints():
            await self.session.execute(delete(ArticleTag).where(ArticleTag.article_id == article_id))
            self.session.add_all(ArticleTag(article_id=article_id, tag_name=name) for name in names)
            await self.session.flush()
        return names

    async def tags_for(self, article_id: int) -> List[str]:
        result = await self.session.execute(
            select(ArticleTag.tag_name)
            .where(ArticleTag.article_id == article_id)
            .order_by(ArticleTag.tag_name)
        )
        return list(result.scalars().all())

    async def all_tags(self) -> List[str]:
        """Every tag in use, sorted."""
        result = await self.session.execute(
            select(ArticleTag.tag_name).group_by(ArticleTag.tag_name).order_by(ArticleTag.tag_name)
        )
        return list(result.scalars().all())
