from .wagers import (
    place_wager,
    list_wagers,
    get_wager,
    quote_wager,
)
from .market_tracker import (
    apply_wager_exposure,
    reconcile_pending_exposure,
    record_chart_point,
    query_chart_range,
    get_trending_markets,
)
from .settlement import (
    resolve_market,
    close_market,
)
from .aggregation import (
    get_portfolio,
    get_leaderboard,
    compute_portfolio,
)
from .users import (
    register_user,
    get_user,
    list_users,
    update_user,
)
from .markets import (
    create_market,
    get_market,
    list_markets,
)
from .platform_stats import (
    get_platform_stats,
    ensure_platform_stats,
    create_platform_stats,
    update_platform_stats,
    recompute_platform_stats,
)
