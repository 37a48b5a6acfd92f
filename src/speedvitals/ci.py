# Copyright (c) Syntropy Systems
"""CI environment detection.

Each supported provider is recognised by an environment variable it always
sets, then its own variables are mapped onto :class:`CIMetadata`. Outside
CI every field stays empty, apart from branch and commit which are read
from the local git checkout when one is available.
"""
from __future__ import annotations

import logging
import os
import shutil
import subprocess
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Optional

from speedvitals.models.base import JSONValue, SpeedVitalsBaseModel

logger = logging.getLogger(__name__)

Env = Mapping[str, str]


class CIMetadata(SpeedVitalsBaseModel):
    """What is known about the CI build that triggered the analysis."""

    is_ci: bool = False
    name: Optional[str] = None
    service: Optional[str] = None
    branch: Optional[str] = None
    commit: Optional[str] = None
    tag: Optional[str] = None
    build: Optional[str] = None
    build_url: Optional[str] = None
    job: Optional[str] = None
    job_url: Optional[str] = None
    is_pr: bool = False
    pr: Optional[str] = None
    pr_branch: Optional[str] = None
    slug: Optional[str] = None
    root: Optional[str] = None

    def with_branch(self, branch: str | None) -> CIMetadata:
        """Return a copy with the branch overridden, if one is given."""
        if not branch:
            return self
        return self.model_copy(update={"branch": branch})

    def to_payload(self) -> dict[str, JSONValue]:
        """Render the ``ciEnv`` object sent with each test."""
        return {
            "isCi": self.is_ci,
            "name": self.name,
            "service": self.service,
            "isPr": self.is_pr,
            "pr": self.pr,
            "prBranch": self.pr_branch,
            "commit": self.commit,
            "branch": self.branch,
            "build": self.build,
            "slug": self.slug,
        }


@dataclass(frozen=True)
class _Provider:
    marker: str
    detect: Callable[[Env], CIMetadata]


def _get(env: Env, key: str) -> str | None:
    value = env.get(key)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _strip_ref(ref: str | None) -> str | None:
    if ref is None:
        return None
    for prefix in ("refs/heads/", "refs/tags/"):
        if ref.startswith(prefix):
            return ref[len(prefix):]
    return ref


def _pr_or_none(value: str | None) -> str | None:
    """Normalise providers that report "false" when not building a PR."""
    if value is None or value.lower() == "false":
        return None
    return value


def _github(env: Env) -> CIMetadata:
    event = _get(env, "GITHUB_EVENT_NAME") or ""
    ref = _get(env, "GITHUB_REF")
    is_pr = event in ("pull_request", "pull_request_target")
    pr = None
    if is_pr and ref and ref.startswith("refs/pull/"):
        pr = ref.split("/")[2]
    server = _get(env, "GITHUB_SERVER_URL") or "https://github.com"
    repo = _get(env, "GITHUB_REPOSITORY")
    run_id = _get(env, "GITHUB_RUN_ID")
    build_url = f"{server}/{repo}/actions/runs/{run_id}" if repo and run_id else None
    return CIMetadata(
        is_ci=True,
        name="GitHub Actions",
        service="github",
        commit=_get(env, "GITHUB_SHA"),
        branch=_get(env, "GITHUB_BASE_REF") if is_pr else _strip_ref(ref),
        tag=_strip_ref(ref) if ref and ref.startswith("refs/tags/") else None,
        build=run_id,
        build_url=build_url,
        job=_get(env, "GITHUB_JOB"),
        is_pr=is_pr,
        pr=pr,
        pr_branch=_get(env, "GITHUB_HEAD_REF") if is_pr else None,
        slug=repo,
        root=_get(env, "GITHUB_WORKSPACE"),
    )


def _gitlab(env: Env) -> CIMetadata:
    pr = _get(env, "CI_MERGE_REQUEST_IID")
    return CIMetadata(
        is_ci=True,
        name="GitLab CI/CD",
        service="gitlab",
        commit=_get(env, "CI_COMMIT_SHA"),
        tag=_get(env, "CI_COMMIT_TAG"),
        build=_get(env, "CI_PIPELINE_ID"),
        build_url=_get(env, "CI_PIPELINE_URL"),
        job=_get(env, "CI_JOB_ID"),
        job_url=_get(env, "CI_JOB_URL"),
        branch=_get(env, "CI_MERGE_REQUEST_TARGET_BRANCH_NAME") or _get(env, "CI_COMMIT_REF_NAME"),
        is_pr=pr is not None,
        pr=pr,
        pr_branch=_get(env, "CI_MERGE_REQUEST_SOURCE_BRANCH_NAME"),
        slug=_get(env, "CI_PROJECT_PATH"),
        root=_get(env, "CI_PROJECT_DIR"),
    )


def _circleci(env: Env) -> CIMetadata:
    pr = _get(env, "CIRCLE_PR_NUMBER")
    pull_request_url = _get(env, "CIRCLE_PULL_REQUEST")
    if pr is None and pull_request_url:
        pr = pull_request_url.rstrip("/").rsplit("/", 1)[-1]
    build = _get(env, "CIRCLE_BUILD_NUM")
    node = _get(env, "CIRCLE_NODE_INDEX")
    user = _get(env, "CIRCLE_PROJECT_USERNAME")
    repo = _get(env, "CIRCLE_PROJECT_REPONAME")
    return CIMetadata(
        is_ci=True,
        name="CircleCI",
        service="circleci",
        commit=_get(env, "CIRCLE_SHA1"),
        tag=_get(env, "CIRCLE_TAG"),
        build=build,
        build_url=_get(env, "CIRCLE_BUILD_URL"),
        job=f"{build}.{node}" if build and node else build,
        branch=_get(env, "CIRCLE_BRANCH"),
        is_pr=pr is not None,
        pr=pr,
        pr_branch=_get(env, "CIRCLE_BRANCH") if pr else None,
        slug=f"{user}/{repo}" if user and repo else None,
        root=_get(env, "CIRCLE_WORKING_DIRECTORY"),
    )


def _travis(env: Env) -> CIMetadata:
    pr = _pr_or_none(_get(env, "TRAVIS_PULL_REQUEST"))
    return CIMetadata(
        is_ci=True,
        name="Travis CI",
        service="travis",
        commit=_get(env, "TRAVIS_COMMIT"),
        tag=_get(env, "TRAVIS_TAG"),
        build=_get(env, "TRAVIS_BUILD_NUMBER"),
        build_url=_get(env, "TRAVIS_BUILD_WEB_URL"),
        job=_get(env, "TRAVIS_JOB_NUMBER"),
        job_url=_get(env, "TRAVIS_JOB_WEB_URL"),
        branch=_get(env, "TRAVIS_BRANCH"),
        is_pr=pr is not None,
        pr=pr,
        pr_branch=_get(env, "TRAVIS_PULL_REQUEST_BRANCH"),
        slug=_get(env, "TRAVIS_REPO_SLUG"),
        root=_get(env, "TRAVIS_BUILD_DIR"),
    )


def _jenkins(env: Env) -> CIMetadata:
    pr = _get(env, "CHANGE_ID") or _get(env, "ghprbPullId")
    branch = (
        _get(env, "CHANGE_TARGET")
        or _get(env, "ghprbTargetBranch")
        or _get(env, "GIT_LOCAL_BRANCH")
        or _get(env, "GIT_BRANCH")
        or _get(env, "BRANCH_NAME")
    )
    return CIMetadata(
        is_ci=True,
        name="Jenkins",
        service="jenkins",
        commit=_get(env, "ghprbActualCommit") or _get(env, "GIT_COMMIT"),
        build=_get(env, "BUILD_NUMBER"),
        build_url=_get(env, "BUILD_URL"),
        branch=branch,
        is_pr=pr is not None,
        pr=pr,
        pr_branch=(_get(env, "ghprbSourceBranch") or _get(env, "BRANCH_NAME")) if pr else None,
        root=_get(env, "WORKSPACE"),
    )


def _buildkite(env: Env) -> CIMetadata:
    pr = _pr_or_none(_get(env, "BUILDKITE_PULL_REQUEST"))
    org = _get(env, "BUILDKITE_ORGANIZATION_SLUG")
    project = _get(env, "BUILDKITE_PROJECT_SLUG")
    return CIMetadata(
        is_ci=True,
        name="Buildkite",
        service="buildkite",
        commit=_get(env, "BUILDKITE_COMMIT"),
        tag=_get(env, "BUILDKITE_TAG"),
        build=_get(env, "BUILDKITE_BUILD_NUMBER"),
        build_url=_get(env, "BUILDKITE_BUILD_URL"),
        branch=(_get(env, "BUILDKITE_PULL_REQUEST_BASE_BRANCH") if pr else None)
        or _get(env, "BUILDKITE_BRANCH"),
        is_pr=pr is not None,
        pr=pr,
        pr_branch=_get(env, "BUILDKITE_BRANCH") if pr else None,
        slug=f"{org}/{project}" if org and project else None,
        root=_get(env, "BUILDKITE_BUILD_CHECKOUT_PATH"),
    )


def _azure(env: Env) -> CIMetadata:
    pr = _get(env, "SYSTEM_PULLREQUEST_PULLREQUESTID")
    source_branch = _strip_ref(_get(env, "BUILD_SOURCEBRANCH"))
    return CIMetadata(
        is_ci=True,
        name="Azure Pipelines",
        service="azure-pipelines",
        commit=_get(env, "BUILD_SOURCEVERSION"),
        build=_get(env, "BUILD_BUILDNUMBER"),
        branch=_strip_ref(_get(env, "SYSTEM_PULLREQUEST_TARGETBRANCH")) if pr else source_branch,
        is_pr=pr is not None,
        pr=pr,
        pr_branch=source_branch if pr else None,
        slug=_get(env, "BUILD_REPOSITORY_NAME"),
        root=_get(env, "BUILD_REPOSITORY_LOCALPATH"),
    )


def _bitbucket(env: Env) -> CIMetadata:
    pr = _get(env, "BITBUCKET_PR_ID")
    slug = _get(env, "BITBUCKET_REPO_FULL_NAME")
    build = _get(env, "BITBUCKET_BUILD_NUMBER")
    build_url = (
        f"https://bitbucket.org/{slug}/addon/pipelines/home#!/results/{build}"
        if slug and build
        else None
    )
    return CIMetadata(
        is_ci=True,
        name="Bitbucket Pipelines",
        service="bitbucket",
        commit=_get(env, "BITBUCKET_COMMIT"),
        tag=_get(env, "BITBUCKET_TAG"),
        build=build,
        build_url=build_url,
        branch=_get(env, "BITBUCKET_PR_DESTINATION_BRANCH") or _get(env, "BITBUCKET_BRANCH"),
        is_pr=pr is not None,
        pr=pr,
        pr_branch=_get(env, "BITBUCKET_BRANCH") if pr else None,
        slug=slug,
        root=_get(env, "BITBUCKET_CLONE_DIR"),
    )


PROVIDERS: list[_Provider] = [
    _Provider(marker="GITHUB_ACTIONS", detect=_github),
    _Provider(marker="GITLAB_CI", detect=_gitlab),
    _Provider(marker="CIRCLECI", detect=_circleci),
    _Provider(marker="TRAVIS", detect=_travis),
    _Provider(marker="JENKINS_URL", detect=_jenkins),
    _Provider(marker="BUILDKITE", detect=_buildkite),
    _Provider(marker="BUILD_BUILDURI", detect=_azure),
    _Provider(marker="BITBUCKET_BUILD_NUMBER", detect=_bitbucket),
]


def _run_command(argv: list[str], *, timeout: float) -> subprocess.CompletedProcess[str] | None:
    cmd_path = shutil.which(argv[0])
    if cmd_path is None:
        return None
    try:
        return subprocess.run(  # noqa: S603
            [cmd_path, *argv[1:]],
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired):
        return None


def _git_output(*args: str) -> str | None:
    result = _run_command(["git", *args], timeout=5)
    if result is None or result.returncode != 0:
        return None
    return result.stdout.strip() or None


def capture_git_info() -> tuple[str | None, str | None]:
    """Return (branch, commit) of the local checkout, or Nones outside git."""
    if _git_output("rev-parse", "--is-inside-work-tree") is None:
        return None, None
    commit = _git_output("rev-parse", "HEAD")
    branch = _git_output("rev-parse", "--abbrev-ref", "HEAD")
    if branch == "HEAD":
        # Detached checkout
        branch = None
    return branch, commit


def detect_ci(env: Env | None = None, *, use_git: bool = True) -> CIMetadata:
    """Detect the CI provider from environment variables.

    Args:
        env: Environment to inspect (defaults to os.environ)
        use_git: Fill in missing branch/commit from the local git checkout

    Returns:
        CIMetadata, with every field empty when not running in CI

    """
    if env is None:
        env = os.environ

    metadata: CIMetadata | None = None
    for provider in PROVIDERS:
        if _get(env, provider.marker) is not None:
            metadata = provider.detect(env)
            break

    if metadata is None:
        ci_flag = (_get(env, "CI") or "").lower()
        metadata = CIMetadata(is_ci=ci_flag in ("true", "1"))

    logger.debug("CI detection: is_ci=%s service=%s", metadata.is_ci, metadata.service)

    if use_git and (metadata.branch is None or metadata.commit is None):
        branch, commit = capture_git_info()
        metadata = metadata.model_copy(
            update={
                "branch": metadata.branch or branch,
                "commit": metadata.commit or commit,
            },
        )

    return metadata
