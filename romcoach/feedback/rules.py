from __future__ import annotations
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Dict, List, Optional

from romcoach.feedback.gate import Feedback, Severity
from romcoach.pose.geometry import angle_3pt
from romcoach.pose.landmarks import LandmarkFrame, Point2D, PoseLandmark as LM

if TYPE_CHECKING:
    from romcoach.feedback.classifier import FeedbackConfig, FeedbackSession

WARN, FIX, GOOD = Severity.WARNING, Severity.CORRECTION, Severity.SUCCESS


@dataclass
class RuleContext:
    frame: LandmarkFrame
    session: "FeedbackSession"
    cfg: "FeedbackConfig"

    def pt(self, idx: int) -> Optional[Point2D]:
        return self.frame[idx]

    def visible(self, *idxs: int) -> bool:
        for i in idxs:
            p = self.frame[i]
            if p is None or p.visibility <= self.cfg.visibility_threshold:
                return False
        return True

    def bent(self, a: int, b: int, c: int) -> bool:
        """True when the joint at b is visibly bent past the straight-arm limit."""
        if not self.visible(b, c):
            return False
        ang = angle_3pt(self.pt(a), self.pt(b), self.pt(c))
        return bool(ang) and ang < self.cfg.straight_arm_deg


@dataclass(frozen=True)
class Rule:
    name: str
    check: Callable[[RuleContext], Optional[Feedback]]


def evaluate(rules: List[Rule], ctx: RuleContext) -> Optional[Feedback]:
    """Walk the cascade top-down; the first rule that returns feedback wins."""
    for rule in rules:
        fb = rule.check(ctx)
        if fb is not None:
            return fb
    return None


# ---------- shared ----------

def shoulders_visible(ctx: RuleContext):
    if not ctx.visible(LM.LEFT_SHOULDER, LM.RIGHT_SHOULDER):
        return Feedback("Keep both shoulders visible", WARN)


def _shoulders_tilted(ctx: RuleContext) -> bool:
    return abs(ctx.pt(LM.LEFT_SHOULDER).y - ctx.pt(LM.RIGHT_SHOULDER).y) > ctx.cfg.level_tolerance


def shoulders_level(ctx: RuleContext):
    if _shoulders_tilted(ctx):
        return Feedback("Keep your shoulders level", FIX)


def body_visible(ctx: RuleContext):
    if not ctx.visible(LM.LEFT_SHOULDER, LM.RIGHT_SHOULDER):
        return Feedback("Keep your body visible", WARN)


# ---------- shoulder abduction ----------

def left_elbow_straight(ctx: RuleContext):
    if ctx.bent(LM.LEFT_SHOULDER, LM.LEFT_ELBOW, LM.LEFT_WRIST):
        return Feedback("Straighten your left elbow", FIX)


def right_elbow_straight(ctx: RuleContext):
    if ctx.bent(LM.RIGHT_SHOULDER, LM.RIGHT_ELBOW, LM.RIGHT_WRIST):
        return Feedback("Straighten your right elbow", FIX)


def hands_visible(ctx: RuleContext):
    if not ctx.visible(LM.LEFT_WRIST, LM.RIGHT_WRIST):
        return Feedback("Keep your hands visible", WARN)


def abduction_phase(ctx: RuleContext):
    s, cfg = ctx.session, ctx.cfg
    ly, ry = ctx.pt(LM.LEFT_WRIST).y, ctx.pt(LM.RIGHT_WRIST).y

    if s.phase == "waitDown":
        down_limit = s.neutral_y + cfg.down_buffer
        left_down, right_down = ly >= down_limit, ry >= down_limit
        s.down_counter = s.down_counter + 1 if (left_down and right_down) else 0
        if not left_down and not right_down:
            return Feedback("Lower both arms to reset", FIX)
        if not left_down:
            return Feedback("Lower your left arm to reset", FIX)
        if not right_down:
            return Feedback("Lower your right arm to reset", FIX)
        if s.down_counter >= cfg.require_down_frames:
            return Feedback("Great reset! Ready for the next rep", GOOD)
        return None

    reach_limit = s.target_y + cfg.up_tolerance
    left_up, right_up = ly <= reach_limit, ry <= reach_limit
    if not (left_up and right_up):
        s.up_counter = 0
        if not left_up and not right_up:
            return Feedback("Raise both arms higher", FIX)
        if not left_up:
            return Feedback("Raise your left arm higher", FIX)
        return Feedback("Raise your right arm higher", FIX)

    s.up_counter += 1
    if s.up_counter >= cfg.require_up_frames:
        return Feedback("Nice height! Hold…", GOOD)
    return None


# ---------- overhead press ----------

def _hands_over_head(ctx: RuleContext):
    if not ctx.visible(LM.NOSE, LM.LEFT_WRIST, LM.RIGHT_WRIST):
        return None
    line = ctx.pt(LM.NOSE).y - 0.1
    return ctx.pt(LM.LEFT_WRIST).y < line, ctx.pt(LM.RIGHT_WRIST).y < line


def press_height(ctx: RuleContext):
    up = _hands_over_head(ctx)
    if up is None:
        return None
    left_up, right_up = up
    if not left_up and not right_up:
        return Feedback("Press both hands higher - above your head", FIX)
    if not left_up:
        return Feedback("Press your left hand higher", FIX)
    if not right_up:
        return Feedback("Press your right hand higher", FIX)


def left_arm_extended(ctx: RuleContext):
    if ctx.bent(LM.LEFT_SHOULDER, LM.LEFT_ELBOW, LM.LEFT_WRIST):
        return Feedback("Extend your left arm fully", FIX)


def right_arm_extended(ctx: RuleContext):
    if ctx.bent(LM.RIGHT_SHOULDER, LM.RIGHT_ELBOW, LM.RIGHT_WRIST):
        return Feedback("Extend your right arm fully", FIX)


def press_done(ctx: RuleContext):
    up = _hands_over_head(ctx)
    if up is not None and all(up):
        return Feedback("Great! Both hands are up!", GOOD)


# ---------- forward reach ----------

def reaching_forward(ctx: RuleContext):
    if not ctx.visible(LM.LEFT_WRIST, LM.RIGHT_WRIST):
        return None
    left_reach = ctx.pt(LM.LEFT_WRIST).x < ctx.pt(LM.LEFT_SHOULDER).x - 0.1
    right_reach = ctx.pt(LM.RIGHT_WRIST).x > ctx.pt(LM.RIGHT_SHOULDER).x + 0.1
    if not left_reach and not right_reach:
        return Feedback("Reach forward with your arms", FIX)


def reach_shoulders_level(ctx: RuleContext):
    if _shoulders_tilted(ctx):
        return Feedback("Keep shoulders level while reaching", FIX)


def reach_done(ctx: RuleContext):
    return Feedback("Good reach! Hold the position", GOOD)


# ---------- mini squats ----------

def _knee_angles(ctx: RuleContext):
    left = angle_3pt(ctx.pt(LM.LEFT_HIP), ctx.pt(LM.LEFT_KNEE), ctx.pt(LM.LEFT_ANKLE))
    right = angle_3pt(ctx.pt(LM.RIGHT_HIP), ctx.pt(LM.RIGHT_KNEE), ctx.pt(LM.RIGHT_ANKLE))
    return left, right


def lower_body_visible(ctx: RuleContext):
    if not ctx.visible(LM.LEFT_HIP, LM.RIGHT_HIP, LM.LEFT_KNEE, LM.RIGHT_KNEE, LM.LEFT_ANKLE, LM.RIGHT_ANKLE):
        return Feedback("Show your full body - hips, knees, and ankles", WARN)


def squat_deep_enough(ctx: RuleContext):
    left, right = _knee_angles(ctx)
    if left > ctx.cfg.squat_max_knee_deg and right > ctx.cfg.squat_max_knee_deg:
        return Feedback("Bend your knees more - mini squat down", FIX)


def squat_not_too_deep(ctx: RuleContext):
    left, right = _knee_angles(ctx)
    if left < ctx.cfg.squat_min_knee_deg or right < ctx.cfg.squat_min_knee_deg:
        return Feedback("Don't squat too deep - keep it mini", FIX)


def knees_over_ankles(ctx: RuleContext):
    drift = (abs(ctx.pt(LM.LEFT_KNEE).x - ctx.pt(LM.LEFT_ANKLE).x)
             + abs(ctx.pt(LM.RIGHT_KNEE).x - ctx.pt(LM.RIGHT_ANKLE).x))
    if drift > 0.1:
        return Feedback("Keep knees aligned over your ankles", FIX)


def squat_depth_reached(ctx: RuleContext):
    left_gap = abs(ctx.pt(LM.LEFT_HIP).y - ctx.pt(LM.LEFT_KNEE).y)
    right_gap = abs(ctx.pt(LM.RIGHT_HIP).y - ctx.pt(LM.RIGHT_KNEE).y)
    if left_gap < 0.1 or right_gap < 0.1:
        return Feedback("Perfect squat depth!", GOOD)


# ---------- marching in place ----------

def _knee_lift(ctx: RuleContext, hip: int, knee: int):
    height = ctx.pt(hip).y - ctx.pt(knee).y
    return height > 0.05, height


def hips_knees_visible(ctx: RuleContext):
    if not ctx.visible(LM.LEFT_HIP, LM.RIGHT_HIP, LM.LEFT_KNEE, LM.RIGHT_KNEE):
        return Feedback("Show your full body for marching", WARN)


def knees_lifting(ctx: RuleContext):
    left, _ = _knee_lift(ctx, LM.LEFT_HIP, LM.LEFT_KNEE)
    right, _ = _knee_lift(ctx, LM.RIGHT_HIP, LM.RIGHT_KNEE)
    if not left and not right:
        return Feedback("Lift your knees higher - march in place", FIX)


def left_knee_high(ctx: RuleContext):
    lifted, height = _knee_lift(ctx, LM.LEFT_HIP, LM.LEFT_KNEE)
    if lifted and height < 0.08:
        return Feedback("Lift your left knee higher", FIX)


def right_knee_high(ctx: RuleContext):
    lifted, height = _knee_lift(ctx, LM.RIGHT_HIP, LM.RIGHT_KNEE)
    if lifted and height < 0.08:
        return Feedback("Lift your right knee higher", FIX)


def torso_upright(ctx: RuleContext):
    ls, rs = ctx.pt(LM.LEFT_SHOULDER), ctx.pt(LM.RIGHT_SHOULDER)
    if ls is None or rs is None:
        return None
    shoulder_mid = (ls.x + rs.x) / 2
    hip_mid = (ctx.pt(LM.LEFT_HIP).x + ctx.pt(LM.RIGHT_HIP).x) / 2
    if abs(shoulder_mid - hip_mid) > 0.05:
        return Feedback("Stand up straight - align your body", FIX)


def _good_lift(ctx: RuleContext, hip: int, knee: int, ankle: int) -> bool:
    if not ctx.visible(ankle):
        return False
    lifted, _ = _knee_lift(ctx, hip, knee)
    ang = angle_3pt(ctx.pt(hip), ctx.pt(knee), ctx.pt(ankle))
    return lifted and bool(ang) and ang < 90


def left_lift_good(ctx: RuleContext):
    if _good_lift(ctx, LM.LEFT_HIP, LM.LEFT_KNEE, LM.LEFT_ANKLE):
        return Feedback("Good left knee lift!", GOOD)


def right_lift_good(ctx: RuleContext):
    if _good_lift(ctx, LM.RIGHT_HIP, LM.RIGHT_KNEE, LM.RIGHT_ANKLE):
        return Feedback("Good right knee lift!", GOOD)


def _rules(*fns) -> List[Rule]:
    return [Rule(fn.__name__, fn) for fn in fns]


EXERCISE_RULES: Dict[str, List[Rule]] = {
    "shoulder_abduction": _rules(
        shoulders_visible, shoulders_level, left_elbow_straight, right_elbow_straight,
        hands_visible, abduction_phase,
    ),
    "overhead_press": _rules(
        shoulders_visible, press_height, left_arm_extended, right_arm_extended, press_done,
    ),
    "forward_reach": _rules(
        shoulders_visible, reaching_forward, reach_shoulders_level, reach_done,
    ),
    "mini_squats": _rules(
        lower_body_visible, squat_deep_enough, squat_not_too_deep, knees_over_ankles, squat_depth_reached,
    ),
    "marching_in_place": _rules(
        hips_knees_visible, knees_lifting, left_knee_high, right_knee_high, torso_upright,
        left_lift_good, right_lift_good,
    ),
}

DEFAULT_RULES: List[Rule] = _rules(body_visible)

# camelCase names used by the browser exercise pages
EXERCISE_ALIASES: Dict[str, str] = {
    "shoulderAbduction": "shoulder_abduction",
    "overheadPress": "overhead_press",
    "forwardReach": "forward_reach",
    "miniSquats": "mini_squats",
    "marchingInPlace": "marching_in_place",
}


def rules_for(exercise: str) -> List[Rule]:
    name = EXERCISE_ALIASES.get(exercise, exercise)
    return EXERCISE_RULES.get(name, DEFAULT_RULES)
