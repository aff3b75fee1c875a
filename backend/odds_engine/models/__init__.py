from odds_engine.models.bet_leg import BetLeg
from odds_engine.models.closing_odds import ClosingOddsRow
from odds_engine.models.clv_record import CLVRecordRow
from odds_engine.models.odds_quote import OddsQuote
from odds_engine.models.pick_cycle import PickCycleRow

__all__ = ["OddsQuote", "ClosingOddsRow", "BetLeg", "CLVRecordRow", "PickCycleRow"]
