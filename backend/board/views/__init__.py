from board.views.config_handlers import apply_rank_curve as apply_rank_curve
from board.views.config_handlers import get_rank_config as get_rank_config
from board.views.config_handlers import reload_config as reload_config
from board.views.config_handlers import update_rank as update_rank
from board.views.game_handlers import get_game as get_game
from board.views.game_handlers import list_games as list_games
from board.views.game_handlers import submit_game as submit_game
from board.views.ranking_handlers import get_ranking as get_ranking
from board.views.ranking_handlers import get_ranking_stats as get_ranking_stats
from board.views.user_handlers import get_user as get_user
from board.views.user_handlers import get_user_history as get_user_history
