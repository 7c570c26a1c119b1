import argparse, asyncio, json, sys
from pathlib import Path

from codearena.config.env import load_cfg, load_view_cfg
from codearena.config.constants import DEFAULT_ENV, DEFAULT_VIEW_CFG
from codearena.config.logging import setup_logging
from codearena.session.store import load_session, save_session
from codearena.transport.fetcher import ResilientFetcher
from codearena.battles.service import BattleService, BattleListKind
from codearena.battles.clock import timing_for
from codearena.battles.listing import filter_open_battles, normalize_language
from codearena.battles.state_machine import legal_actions
from codearena.challenges.service import ChallengeService
from codearena.leaderboard.fetchers import LeaderboardSource
from codearena.leaderboard.ranker import LeaderboardQuery, institution_representation, current_user_entry
from apps.arena.tasks.watch import print_battle, print_leaderboard, run_battle_watch, run_leaderboard_watch


log = setup_logging()

def envfile(args) -> str:
    return args.env_file or DEFAULT_ENV

def _error(message: str) -> int:
    print(f"Error: {message}", file=sys.stderr)
    return 1

def _fail(out) -> int:
    log.warning("Request failed", status=out.status, kind=out.kind, message=out.message)
    return _error(out.message)

def _read_code(args) -> str:
    if args.file:
        return Path(args.file).read_text(encoding="utf-8")
    return sys.stdin.read()

# ---------- session ----------
async def run_login(args):
    log.info("=== LOGIN ===", username=args.username)
    cfg = load_cfg(envfile(args))
    session = load_session(cfg.session_file)
    session.login(args.token, args.username)
    save_session(session, cfg.session_file)
    log.info("Session saved", path=str(cfg.session_file))
    print(f"Logged in as {args.username or '(unknown user)'}")
    return 0

async def run_logout(args):
    log.info("=== LOGOUT ===")
    cfg = load_cfg(envfile(args))
    session = load_session(cfg.session_file)
    session.logout()
    save_session(session, cfg.session_file)
    print("Logged out")
    return 0

# ---------- battles ----------
async def run_battle(args):
    log.info("=== BATTLE ===", action=args.action, battle_id=args.id)
    cfg = load_cfg(envfile(args))
    session = load_session(cfg.session_file)
    async with ResilientFetcher.from_cfg(cfg, session) as fetcher:
        svc = BattleService(fetcher)
        if args.action == "join":
            out = await svc.join(args.id)
        elif args.action == "accept":
            out = await svc.accept(args.id)
        elif args.action == "decline":
            out = await svc.decline(args.id)
        else:
            out = await svc.get_battle(args.id)
    if not out.ok:
        return _fail(out)

    battle = out.value
    if args.json:
        print(json.dumps(battle.model_dump(mode="json"), indent=2))
        return 0
    print_battle(battle)
    timing = timing_for(battle)
    if args.action == "timer":
        print(timing.label if timing else f"not running ({battle.status.value})")
        return 0
    if timing is not None:
        print(f"Time left: {timing.label} ({timing.progress_pct}%)")
    actions = sorted(a.value for a in legal_actions(battle, session.username))
    print(f"Actions: {', '.join(actions) or '(none)'}")
    return 0

async def run_battles(args):
    log.info("=== LIST BATTLES ===", status=args.status)
    cfg = load_cfg(envfile(args))
    session = load_session(cfg.session_file)
    async with ResilientFetcher.from_cfg(cfg, session) as fetcher:
        svc = BattleService(fetcher)
        if args.status == BattleListKind.HISTORY.value:
            out = await svc.history(session.username)
        else:
            out = await svc.list_battles(BattleListKind(args.status))
    if not out.ok:
        return _fail(out)

    if args.status == BattleListKind.HISTORY.value:
        print(f"{'Challenge':<30} {'Opponent':<16} {'Result':<6} {'Min':>4} {'Points':>6}")
        print("-" * 66)
        for row in out.value:
            print(f"{row.challenge_title[:30]:<30} {row.opponent_username[:16]:<16} {row.result:<6} "
                  f"{row.duration:>4} {row.points_earned:>6}")
        if not out.value:
            print("(none)")
        return 0

    battles = out.value
    if args.status == BattleListKind.AVAILABLE.value:
        lang = "all" if args.language == "all" else normalize_language(args.language)
        battles = filter_open_battles(battles, args.search, args.difficulty, lang)
    log.info("Battles fetched", count=len(battles))
    for b in battles:
        print_battle(b)
    if not battles:
        print("(none)")
    return 0

async def run_create(args):
    log.info("=== CREATE BATTLE ===", title=args.title, opponent=args.opponent)
    cfg = load_cfg(envfile(args))
    session = load_session(cfg.session_file)
    async with ResilientFetcher.from_cfg(cfg, session) as fetcher:
        out = await BattleService(fetcher).create_battle(
            args.title,
            challenge_id=args.challenge_id,
            challenge_title=args.challenge_title or args.title,
            duration_minutes=args.duration,
            difficulty=args.difficulty,
            language=normalize_language(args.language),
            prize_points=args.prize,
            opponent_username=args.opponent,
        )
    if not out.ok:
        return _fail(out)
    log.info("Battle created", battle_id=out.value.id)
    print_battle(out.value)
    return 0

async def run_code(args):
    log.info("=== RUN CODE ===", language=args.language)
    cfg = load_cfg(envfile(args))
    session = load_session(cfg.session_file)
    try:
        code = _read_code(args)
    except (OSError, UnicodeDecodeError) as e:
        log.warning("Cannot read source", file=args.file, error=str(e))
        return _error(f"cannot read {args.file}: {getattr(e, 'strerror', None) or e}")
    async with ResilientFetcher.from_cfg(cfg, session) as fetcher:
        out = await BattleService(fetcher).run_code(normalize_language(args.language), code, args.input)
    if not out.ok:
        return _fail(out)
    print(out.value.output)
    return 0

async def run_submit(args):
    log.info("=== SUBMIT ===", battle_id=args.id, language=args.language)
    cfg = load_cfg(envfile(args))
    session = load_session(cfg.session_file)
    try:
        code = _read_code(args)
    except (OSError, UnicodeDecodeError) as e:
        log.warning("Cannot read source", file=args.file, error=str(e))
        return _error(f"cannot read {args.file}: {getattr(e, 'strerror', None) or e}")
    async with ResilientFetcher.from_cfg(cfg, session) as fetcher:
        out = await BattleService(fetcher).submit_code(args.id, normalize_language(args.language), code)
    if not out.ok:
        return _fail(out)
    res = out.value
    passed = f"{res.passed}/{res.total}" if res.total is not None else "?"
    print(f"Status: {res.status or 'unknown'} | tests passed: {passed} | points: {res.points}")
    if res.error_message:
        print(res.error_message)
    if res.battle_completed:
        print(f"Battle completed. Winner: {res.winner or 'draw'}")
    return 0

# ---------- challenges ----------
def print_challenge(c):
    daily = " | daily" if c.is_daily else ""
    tags = f" [{', '.join(c.tags)}]" if c.tags else ""
    print(f"[challenge {c.id}] {c.title} | {c.difficulty} | {c.points} pts | solved by {c.solved_count}{daily}{tags}")

async def run_challenges(args):
    log.info("=== CHALLENGES ===", daily=args.daily, page=args.page, difficulty=args.difficulty)
    cfg = load_cfg(envfile(args))
    session = load_session(cfg.session_file)
    async with ResilientFetcher.from_cfg(cfg, session) as fetcher:
        svc = ChallengeService(fetcher)
        if args.daily:
            out = await svc.daily()
        else:
            difficulty = None if args.difficulty == "all" else args.difficulty
            out = await svc.list_challenges(args.page, args.per_page, difficulty, args.search)
    if not out.ok:
        return _fail(out)

    if args.daily:
        print_challenge(out.value)
        if out.value.description:
            print(out.value.description)
        return 0
    for c in out.value.items:
        print_challenge(c)
    if not out.value.items:
        print("(none)")
    print(f"Page {out.value.page}/{out.value.total_pages}")
    return 0

# ---------- leaderboard ----------
def _query(args) -> LeaderboardQuery:
    view = load_view_cfg(args.view_cfg)
    return LeaderboardQuery(
        search=args.search or "",
        institution=args.institution or view.institution,
        sort_by=args.sort or view.sort_by,
        direction=args.dir or view.direction,
        page_size=args.top or view.page_size,
    )

def _board_type(args):
    return args.type or load_view_cfg(args.view_cfg).board_type

async def run_leaderboard(args):
    log.info("=== LEADERBOARD ===", search=args.search, institution=args.institution, sort=args.sort)
    cfg = load_cfg(envfile(args))
    session = load_session(cfg.session_file)
    query = _query(args)
    async with ResilientFetcher.from_cfg(cfg, session) as fetcher:
        out = await LeaderboardSource(fetcher, board_type=_board_type(args)).fetch()
    if not out.ok:
        return _fail(out)

    entries = out.value.entries
    print_leaderboard(entries, query)
    rep = institution_representation(entries)
    if rep["top"]:
        print(f"\nMost represented: {rep['top']['name']} ({rep['top']['count']})")
    me = current_user_entry(entries)
    if me is not None:
        print(f"You: #{me.rank if me.rank is not None else '?'} with {me.total_points:.0f} points")
    return 0

# ---------- watch ----------
async def run_watch(args):
    cfg = load_cfg(envfile(args))
    session = load_session(cfg.session_file)
    if args.target == "leaderboard":
        log.info("=== WATCH LEADERBOARD ===")
        await run_leaderboard_watch(cfg, session, _query(args), board_type=_board_type(args))
    else:
        if not args.id:
            print("watch battle needs a battle id", file=sys.stderr)
            return 2
        log.info("=== WATCH BATTLE ===", battle_id=args.id)
        await run_battle_watch(cfg, session, args.id)
    return 0

def _add_leaderboard_opts(p):
    p.add_argument("--search", default="")
    p.add_argument("--institution", help="all | dbuu | iit | other | <short name>")
    p.add_argument("--sort", choices=["points", "challengesSolved", "battlesWon", "avgRating"])
    p.add_argument("--dir", choices=["asc", "desc"])
    p.add_argument("--top", type=int, help="rows to show")
    p.add_argument("--type", help="leaderboard type passed to the server")
    p.add_argument("--view-cfg", default=DEFAULT_VIEW_CFG)

def main():
    ap = argparse.ArgumentParser(prog="arena")
    ap.add_argument("--env-file", default=None, help=f"dotenv file (default {DEFAULT_ENV})")
    sub = ap.add_subparsers(dest="cmd")

    li = sub.add_parser("login")
    li.add_argument("--token", required=True)
    li.add_argument("--username")
    li.set_defaults(func=run_login)

    lo = sub.add_parser("logout")
    lo.set_defaults(func=run_logout)

    b = sub.add_parser("battle")
    b.add_argument("action", choices=["show", "join", "accept", "decline", "timer"])
    b.add_argument("id")
    b.add_argument("--json", action="store_true", help="print the battle as JSON")
    b.set_defaults(func=run_battle)

    bl = sub.add_parser("battles")
    bl.add_argument("--status", default="available", choices=[k.value for k in BattleListKind])
    bl.add_argument("--search", default="")
    bl.add_argument("--difficulty", default="all", choices=["all", "easy", "medium", "hard"])
    bl.add_argument("--language", default="all")
    bl.set_defaults(func=run_battles)

    c = sub.add_parser("create")
    c.add_argument("--title", required=True)
    c.add_argument("--challenge-id")
    c.add_argument("--challenge-title")
    c.add_argument("--duration", type=int, default=30, help="minutes")
    c.add_argument("--difficulty", default="easy", choices=["easy", "medium", "hard"])
    c.add_argument("--language", default="python")
    c.add_argument("--prize", type=int, default=25)
    c.add_argument("--opponent", help="username to invite")
    c.set_defaults(func=run_create)

    r = sub.add_parser("run")
    r.add_argument("--language", default="python")
    r.add_argument("--file", help="source file (stdin when omitted)")
    r.add_argument("--input", default="")
    r.set_defaults(func=run_code)

    s = sub.add_parser("submit")
    s.add_argument("id")
    s.add_argument("--language", default="python")
    s.add_argument("--file", help="source file (stdin when omitted)")
    s.set_defaults(func=run_submit)

    ch = sub.add_parser("challenges")
    ch.add_argument("--daily", action="store_true", help="show today's challenge only")
    ch.add_argument("--page", type=int, default=1)
    ch.add_argument("--per-page", type=int, default=12)
    ch.add_argument("--difficulty", default="all", choices=["all", "easy", "medium", "hard"])
    ch.add_argument("--search", default="")
    ch.set_defaults(func=run_challenges)

    lb = sub.add_parser("leaderboard")
    _add_leaderboard_opts(lb)
    lb.set_defaults(func=run_leaderboard)

    w = sub.add_parser("watch")
    w.add_argument("target", choices=["leaderboard", "battle"])
    w.add_argument("id", nargs="?")
    _add_leaderboard_opts(w)
    w.set_defaults(func=run_watch)

    args = ap.parse_args()
    if not getattr(args, "func", None):
        ap.print_help(); return
    setup_logging(load_cfg(envfile(args)).log_level)
    try:
        code = asyncio.run(args.func(args))
    except KeyboardInterrupt:
        log.info("Interrupted")
        code = 130
    sys.exit(code or 0)

if __name__ == "__main__":
    main()
