"""
Scheduler pour les tâches automatiques ABC Cours CRM
- Passage en retard des notes de règlement échues (chaque nuit à 1h)
- Expiration des séries de coupons dépassées (chaque nuit à 1h15)
"""

import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

logger = logging.getLogger("scheduler")


class TaskScheduler:
    """Gestionnaire de tâches planifiées"""

    def __init__(self):
        self.scheduler = AsyncIOScheduler(timezone="Europe/Paris")

    def start(self):
        """Démarre le scheduler avec toutes les tâches"""
        self.scheduler.add_job(
            self.update_overdue_settlement_notes,
            CronTrigger(hour=1, minute=0),
            id="overdue_settlement_notes",
            name="Notes de règlement en retard",
            replace_existing=True
        )

        self.scheduler.add_job(
            self.expire_coupon_series,
            CronTrigger(hour=1, minute=15),
            id="expire_coupon_series",
            name="Expiration des séries de coupons",
            replace_existing=True
        )

        self.scheduler.start()
        logger.info("Scheduler démarré avec succès")

    def stop(self):
        """Arrête le scheduler"""
        if self.scheduler.running:
            self.scheduler.shutdown()
            logger.info("Scheduler arrêté")

    # ==================== TÂCHES PLANIFIÉES ====================

    async def update_overdue_settlement_notes(self):
        from services.settlement_service import mark_overdue_notes

        try:
            updated = await mark_overdue_notes()
            logger.info(f"Notes en retard: {updated} mise(s) à jour")
        except Exception as e:
            logger.error(f"Erreur mise à jour des notes en retard: {str(e)}")

    async def expire_coupon_series(self):
        from services.coupon_service import expire_coupon_series

        try:
            expired = await expire_coupon_series()
            logger.info(f"Séries de coupons expirées: {expired}")
        except Exception as e:
            logger.error(f"Erreur expiration des séries de coupons: {str(e)}")


# Instance globale
task_scheduler = TaskScheduler()
