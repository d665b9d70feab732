"""Archival engine: move aged daily menus from the primary store to the archive.

For every daily menu dated strictly before the cutoff:

- the menu and its items are copied into the archive store (new ids);
- selections pointing at the menu are copied with `daily_menu_id` remapped to
  the archive-side id;
- selections, items and the menu are deleted from the primary store.

Work is split into batches of menus. Each batch opens one archive transaction
and one primary transaction; the archive commits first, then the primary. Any
error before the archive commit rolls back both, so the primary keeps every
selected record. A crash between the two commits leaves the batch in both
stores; the next cycle finds the archive copy by its date and only deletes the
primary side (plus any selection not archived yet), so repeated cycles
converge.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, selectinload, sessionmaker

from viandas.models import DailyMenu, DailyMenuItem, UserMenuSelection
from viandas.services.scheduling.loop import CycleCancelled, raise_if_cancelled

logger = logging.getLogger(__name__)


class ArchivalError(RuntimeError):
    """A batch failed and was rolled back; carries the stats gathered so far."""

    def __init__(self, message: str, stats: "ArchivalStats") -> None:
        super().__init__(message)
        self.stats = stats


@dataclass
class ArchivalStats:
    cutoff: date
    dry_run: bool = False
    menus_found: int = 0
    menus_archived: int = 0
    menus_reused: int = 0
    items_archived: int = 0
    selections_archived: int = 0
    selections_deleted: int = 0
    batches_committed: int = 0
    elapsed_ms: float = 0.0
    archived_dates: List[date] = field(default_factory=list)

    @property
    def records_moved(self) -> int:
        return self.menus_archived + self.menus_reused

    def as_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["cutoff"] = self.cutoff.isoformat()
        data["archived_dates"] = [d.isoformat() for d in self.archived_dates]
        return data


def cutoff_for(today: date, retention_days: int) -> date:
    """Records dated strictly before the returned date are eligible."""
    return today - timedelta(days=retention_days)


def _selection_key(selection: UserMenuSelection) -> Tuple[int, str, Optional[datetime]]:
    ts = selection.selected_at
    if ts is not None and ts.tzinfo is not None:
        ts = ts.astimezone(timezone.utc).replace(tzinfo=None)
    category = getattr(selection.selected_category, "name", selection.selected_category)
    return (selection.user_id, category, ts)


def _aged_menu_ids(session: Session, cutoff: date) -> List[int]:
    stmt = (
        select(DailyMenu.id)
        .where(DailyMenu.menu_date < cutoff)
        .order_by(DailyMenu.menu_date.asc())
    )
    return list(session.execute(stmt).scalars().all())


def _load_menus(session: Session, menu_ids: Sequence[int]) -> List[DailyMenu]:
    stmt = (
        select(DailyMenu)
        .options(selectinload(DailyMenu.items))
        .where(DailyMenu.id.in_(menu_ids))
        .order_by(DailyMenu.menu_date.asc())
    )
    return list(session.execute(stmt).scalars().all())


def _load_selections(session: Session, menu_id: int) -> List[UserMenuSelection]:
    stmt = (
        select(UserMenuSelection)
        .where(UserMenuSelection.daily_menu_id == menu_id)
        .order_by(UserMenuSelection.id.asc())
    )
    return list(session.execute(stmt).scalars().all())


def _archive_batch(
    menu_ids: Sequence[int],
    stats: ArchivalStats,
    primary_sessions: sessionmaker,
    archive_sessions: sessionmaker,
    stop_event: Optional[threading.Event],
) -> None:
    primary = primary_sessions()
    archive = archive_sessions()
    archive_committed = False
    try:
        menus = _load_menus(primary, menu_ids)
        if not menus:
            return

        menu_id_map: Dict[int, int] = {}
        selections_to_archive: List[UserMenuSelection] = []
        selection_ids_to_delete: List[int] = []
        batch_menus = batch_reused = batch_items = 0

        for menu in menus:
            raise_if_cancelled(stop_event)

            existing = archive.execute(
                select(DailyMenu).where(DailyMenu.menu_date == menu.menu_date)
            ).scalar_one_or_none()

            if existing is None:
                archived_menu = DailyMenu(
                    menu_date=menu.menu_date,
                    items=[DailyMenuItem(name=item.name, category=item.category) for item in menu.items],
                )
                archive.add(archived_menu)
                archive.flush()  # assigns archived_menu.id
                already_archived = set()
                batch_menus += 1
                batch_items += len(menu.items)
            else:
                # Left over from a cycle that crashed between the two commits.
                archived_menu = existing
                already_archived = {
                    _selection_key(s) for s in _load_selections(archive, existing.id)
                }
                batch_reused += 1
                logger.warning(
                    "archive_batch: menu_date=%s already archived as id=%s, reusing",
                    menu.menu_date,
                    existing.id,
                )

            menu_id_map[menu.id] = archived_menu.id

            for selection in _load_selections(primary, menu.id):
                if _selection_key(selection) not in already_archived:
                    selections_to_archive.append(
                        UserMenuSelection(
                            user_id=selection.user_id,
                            daily_menu_id=menu_id_map[menu.id],
                            selected_category=selection.selected_category,
                            selected_at=selection.selected_at,
                            is_active=selection.is_active,
                            observation=selection.observation,
                        )
                    )
                selection_ids_to_delete.append(selection.id)

        raise_if_cancelled(stop_event)

        if selections_to_archive:
            archive.add_all(selections_to_archive)
            archive.flush()

        processed_ids = [menu.id for menu in menus]
        no_sync = {"synchronize_session": False}
        if selection_ids_to_delete:
            primary.execute(
                delete(UserMenuSelection).where(UserMenuSelection.id.in_(selection_ids_to_delete)),
                execution_options=no_sync,
            )
        primary.execute(
            delete(DailyMenuItem).where(DailyMenuItem.daily_menu_id.in_(processed_ids)),
            execution_options=no_sync,
        )
        primary.execute(
            delete(DailyMenu).where(DailyMenu.id.in_(processed_ids)),
            execution_options=no_sync,
        )
        primary.flush()

        raise_if_cancelled(stop_event)

        archive.commit()
        archive_committed = True
        primary.commit()

        stats.menus_archived += batch_menus
        stats.menus_reused += batch_reused
        stats.items_archived += batch_items
        stats.selections_archived += len(selections_to_archive)
        stats.selections_deleted += len(selection_ids_to_delete)
        stats.batches_committed += 1
        stats.archived_dates.extend(menu.menu_date for menu in menus)
        logger.info(
            "archive_batch: committed menus=%d reused=%d items=%d selections_archived=%d selections_deleted=%d",
            batch_menus,
            batch_reused,
            batch_items,
            len(selections_to_archive),
            len(selection_ids_to_delete),
        )
    except BaseException:
        if archive_committed:
            logger.error(
                "archive_batch: archive committed but primary delete failed; "
                "menus %s are now in both stores and will be reconciled next cycle",
                list(menu_ids),
            )
        primary.rollback()
        archive.rollback()
        raise
    finally:
        primary.close()
        archive.close()


def run_archival_cycle(
    cutoff: date,
    *,
    primary_sessions: sessionmaker,
    archive_sessions: sessionmaker,
    batch_size: int = 100,
    stop_event: Optional[threading.Event] = None,
    dry_run: bool = False,
) -> ArchivalStats:
    """Archive every daily menu dated before `cutoff`.

    The set of aged menus is fixed when the cycle starts; menus inserted
    afterwards are left for the next cycle.

    Returns:
        ArchivalStats (all counters zero when nothing is aged).

    Raises:
        ArchivalError: a batch failed; that batch was rolled back in both stores.
        CycleCancelled: `stop_event` was set; the in-flight batch was rolled back.
    """
    if batch_size <= 0:
        raise ValueError("batch_size must be > 0")

    started = time.monotonic()
    stats = ArchivalStats(cutoff=cutoff, dry_run=dry_run)
    logger.info("run_archival_cycle: cutoff=%s dry_run=%s", cutoff, dry_run)

    with primary_sessions() as session:
        menu_ids = _aged_menu_ids(session, cutoff)
        stats.menus_found = len(menu_ids)
        if dry_run and menu_ids:
            for menu in _load_menus(session, menu_ids):
                stats.items_archived += len(menu.items)
                stats.selections_archived += len(_load_selections(session, menu.id))
                stats.archived_dates.append(menu.menu_date)

    if not menu_ids:
        logger.info("run_archival_cycle: no daily menus older than %s", cutoff)
        stats.elapsed_ms = round((time.monotonic() - started) * 1000, 2)
        return stats

    if dry_run:
        logger.info("run_archival_cycle: [DRY RUN] would archive %d menus", len(menu_ids))
        stats.elapsed_ms = round((time.monotonic() - started) * 1000, 2)
        return stats

    logger.info("run_archival_cycle: found %d daily menus to archive", len(menu_ids))

    for offset in range(0, len(menu_ids), batch_size):
        raise_if_cancelled(stop_event)
        batch = menu_ids[offset : offset + batch_size]
        try:
            _archive_batch(batch, stats, primary_sessions, archive_sessions, stop_event)
        except CycleCancelled:
            raise
        except Exception as e:
            stats.elapsed_ms = round((time.monotonic() - started) * 1000, 2)
            logger.error(
                "run_archival_cycle: batch %d failed, rolled back: %s: %s",
                offset // batch_size + 1,
                type(e).__name__,
                e,
            )
            raise ArchivalError(f"archival batch failed: {type(e).__name__}: {e}", stats) from e

    stats.elapsed_ms = round((time.monotonic() - started) * 1000, 2)
    logger.info(
        "run_archival_cycle: completed cutoff=%s menus=%d reused=%d items=%d selections=%d elapsed=%.2fms",
        cutoff,
        stats.menus_archived,
        stats.menus_reused,
        stats.items_archived,
        stats.selections_archived,
        stats.elapsed_ms,
    )
    return stats


def make_archival_tick(
    retention_days: int,
    *,
    primary_sessions: sessionmaker,
    archive_sessions: sessionmaker,
    clock: Callable[[], datetime],
    batch_size: int = 100,
) -> Callable[[threading.Event], ArchivalStats]:
    """Bind everything but the stop event, for `PeriodicLoop`.

    The cutoff is recomputed from `clock()` on every tick.
    """

    def _tick(stop_event: threading.Event) -> ArchivalStats:
        cutoff = cutoff_for(clock().date(), retention_days)
        return run_archival_cycle(
            cutoff,
            primary_sessions=primary_sessions,
            archive_sessions=archive_sessions,
            batch_size=batch_size,
            stop_event=stop_event,
        )

    return _tick
