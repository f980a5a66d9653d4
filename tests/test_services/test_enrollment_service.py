"""
EnrollmentService测试 - 使用真实SQLite数据库
"""

import asyncio

import pytest

from courseplatform.core.exceptions import InvalidTransitionError, NotFoundError
from courseplatform.models.learning import EnrollmentAction, EnrollmentStatus
from courseplatform.repositories.content_repository import ContentRepository
from courseplatform.services.enrollment_service import EnrollmentService


@pytest.mark.asyncio
class TestEnrollmentService:
    """报名服务测试类"""

    @pytest.fixture
    def service(self, session_factory, mock_cache):
        return EnrollmentService(session_factory, cache=mock_cache)

    async def _student_count(self, session_factory, course_id) -> int:
        async with session_factory() as session:
            return (await ContentRepository(session).get_course(course_id)).student_count

    async def test_enroll_is_idempotent(self, service, seed, session_factory, mock_cache):
        course_id = await seed.course()

        first = await service.enroll("user-1", course_id)
        second = await service.enroll("user-1", course_id)

        assert first.id == second.id
        assert first.status == EnrollmentStatus.ACTIVE
        assert await self._student_count(session_factory, course_id) == 1
        mock_cache.delete_pattern.assert_awaited_once_with(f"course:{course_id}:*")

    async def test_concurrent_enroll_counts_once(self, service, seed, session_factory):
        course_id = await seed.course()

        results = await asyncio.gather(*[service.enroll("user-1", course_id) for _ in range(3)])

        assert len({item.id for item in results}) == 1
        assert await self._student_count(session_factory, course_id) == 1

    async def test_enroll_missing_course(self, service):
        with pytest.raises(NotFoundError):
            await service.enroll("user-1", "missing-course")

    async def test_lifecycle_transitions(self, service, seed):
        course_id = await seed.course()
        await service.enroll("user-1", course_id)

        paused = await service.pause("user-1", course_id)
        assert paused.status == EnrollmentStatus.PAUSED

        # 重复暂停不改变状态
        assert (await service.pause("user-1", course_id)).status == EnrollmentStatus.PAUSED

        with pytest.raises(InvalidTransitionError):
            await service.complete("user-1", course_id)

        resumed = await service.resume("user-1", course_id)
        assert resumed.status == EnrollmentStatus.ACTIVE

        completed = await service.complete("user-1", course_id)
        assert completed.status == EnrollmentStatus.COMPLETED
        assert completed.completed_at is not None

        with pytest.raises(InvalidTransitionError):
            await service.cancel("user-1", course_id)

    async def test_cancel_then_reactivate(self, service, seed):
        course_id = await seed.course()
        await service.enroll("user-1", course_id)

        cancelled = await service.cancel("user-1", course_id)
        assert cancelled.status == EnrollmentStatus.CANCELLED

        with pytest.raises(InvalidTransitionError):
            await service.resume("user-1", course_id)

        reactivated = await service.transition("user-1", course_id, EnrollmentAction.REACTIVATE)
        assert reactivated.status == EnrollmentStatus.ACTIVE
        assert reactivated.completed_at is None

    async def test_transition_missing_enrollment(self, service, seed):
        course_id = await seed.course()
        with pytest.raises(NotFoundError):
            await service.pause("user-1", course_id)

    async def test_progress_complete_only_moves_active(self, service, seed):
        course_id = await seed.course()
        assert await service.on_progress_reaches_complete("user-1", course_id) is None

        await service.enroll("user-1", course_id)
        await service.cancel("user-1", course_id)
        unchanged = await service.on_progress_reaches_complete("user-1", course_id)
        assert unchanged.status == EnrollmentStatus.CANCELLED

        await service.reactivate("user-1", course_id)
        completed = await service.on_progress_reaches_complete("user-1", course_id)
        assert completed.status == EnrollmentStatus.COMPLETED

    async def test_user_enrollments_filter(self, service, seed):
        first_course = await seed.course()
        second_course = await seed.course()
        await service.enroll("user-1", first_course)
        await service.enroll("user-1", second_course)
        await service.pause("user-1", second_course)

        all_enrollments = await service.get_user_enrollments("user-1")
        paused = await service.get_user_enrollments("user-1", EnrollmentStatus.PAUSED)

        assert {item.course_id for item in all_enrollments} == {first_course, second_course}
        assert [item.course_id for item in paused] == [second_course]
