from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel
from typing import Literal, Optional


PRState = Literal["open", "closed", "merged"]
ReviewAction = Literal["approve", "request_changes", "comment"]


class CamelModel(BaseModel):
    """Serializes to the camelCase keys the docs UI reads."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PullRequest(CamelModel):
    """An open pull request (merge request on GitLab)."""
    id: int | str
    number: int
    title: str
    state: PRState
    head: str
    base: str
    url: str


class ReviewComment(CamelModel):
    """A global or inline comment on a pull request."""
    id: int | str
    author: str
    body: str
    created_at: str
    path: Optional[str] = None
    line: Optional[int] = None
    is_own: bool = False

    @model_validator(mode="after")
    def _inline_fields_together(self):
        if (self.path is None) != (self.line is None):
            raise ValueError("path and line must be set together for inline comments")
        return self

    @property
    def is_inline(self) -> bool:
        return self.path is not None


class InlineCommentDraft(CamelModel):
    path: str
    line: int = Field(ge=1)
    body: str


class SubmitReviewPayload(CamelModel):
    """A formal review action, optionally carrying batched inline comments."""
    action: ReviewAction
    body: Optional[str] = None
    comments: list[InlineCommentDraft] = []

    @model_validator(mode="after")
    def _comment_needs_content(self):
        if self.action == "comment" and not self.body and not self.comments:
            raise ValueError("a comment review needs a body or inline comments")
        return self


class ReviewRequest(CamelModel):
    """Body of POST /api/reviews/{repo}."""
    action: str
    pr_number: Optional[int] = None
    comment: Optional[str] = None
    file_path: Optional[str] = None
    line: Optional[int] = None
    commit_sha: Optional[str] = None
    branch: Optional[str] = None
    base_branch: Optional[str] = None
    title: Optional[str] = None


class OAuthSession(BaseModel):
    """Identity forwarded by the OAuth proxy in front of the app."""
    access_token: str
    provider: Optional[str] = None
    name: Optional[str] = None
