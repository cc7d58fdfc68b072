"""
订餐会话和草稿持久化测试
"""

from ..models.base import Category
from ..services.session import OrderSession, SessionRegistry
from .factories import child, item


class TestSessionRegistry:
    """SessionRegistry 测试"""

    def test_same_session_per_user(self, test_db, guardian):
        registry = SessionRegistry(test_db)
        assert registry.get(guardian) is registry.get(guardian)

    def test_draft_survives_new_registry(self, test_db, guardian):
        registry = SessionRegistry(test_db)
        session = registry.get(guardian)
        session.store.upsert("2024-03-04", child(), Category.LUNCH, item(5500))
        session.store.upsert("2024-03-05", child(), Category.SNACK, item(2000))
        registry.save(session)

        restored = SessionRegistry(test_db).get(guardian)

        assert restored.store.all() == session.store.all()

    def test_saving_empty_session_removes_draft(self, test_db, guardian):
        registry = SessionRegistry(test_db)
        session = registry.get(guardian)
        session.store.upsert("2024-03-04", child(), Category.LUNCH, item(5500))
        registry.save(session)

        session.reset()
        registry.save(session)

        assert test_db.execute_one("SELECT COUNT(*) FROM selection_drafts")[0] == 0

    def test_discard(self, test_db, guardian):
        registry = SessionRegistry(test_db)
        session = registry.get(guardian)
        session.store.upsert("2024-03-04", child(), Category.LUNCH, item(5500))
        registry.save(session)

        registry.discard(guardian.id)

        assert len(session.store) == 0
        assert len(registry.get(guardian).store) == 0

    def test_reset_clears_payment_attempt(self, guardian):
        session = OrderSession(guardian)
        session.payment_attempt = object()
        session.store.upsert("2024-03-04", child(), Category.LUNCH, item(5500))

        session.reset()

        assert session.payment_attempt is None
        assert len(session.store) == 0
