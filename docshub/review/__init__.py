from docshub.review.base import ReviewProvider, sort_comments
from docshub.review.github import GitHubReviewProvider
from docshub.review.gitlab import GitLabReviewProvider
from docshub.review.bitbucket import BitbucketReviewProvider
from docshub.review.factory import create_review_provider, extract_repo_path

__all__ = [
    "ReviewProvider",
    "GitHubReviewProvider",
    "GitLabReviewProvider",
    "BitbucketReviewProvider",
    "create_review_provider",
    "extract_repo_path",
    "sort_comments",
]
