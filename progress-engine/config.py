# progress-engine/config.py

"""
Central configuration for the Progress Engine.
-- Scoring rules, competency gates and milestone table --
"""

# --- Tools ---
# Gated tools in dependency order. Unlock events are always reported in this order.
TOOL_ORDER = ("icp", "cost_calculator", "business_case")

# --- Progress Points System ---
POINT_CONFIG = {
    "base_points": {
        "icp": 25,
        "cost": 35,
        "business_case": 50,
        "workflow_complete": 100,
        "export": 10,
    },
    "icp_score_bonus_rate": 0.25,
    "efficiency_bonus_points": 5,
    "efficiency_max_seconds": 1000,
    "comprehensive_bonus_points": 25,
    "streak_bonus_every_days": 7,
    "streak_bonus_points": 25,
}

# Highest matching tier wins.
STREAK_MULTIPLIERS = [
    {"min_streak": 7, "multiplier": 1.20},
    {"min_streak": 3, "multiplier": 1.15},
]

# --- Levels & Ranks ---
# (minimum total progress points, name), ascending.
LEVEL_THRESHOLDS = [
    (0, "Foundation"),
    (100, "Developing"),
    (300, "Proficient"),
    (600, "Advanced"),
    (1000, "Expert"),
]

RANK_THRESHOLDS = [
    (0, "E"),
    (100, "D"),
    (300, "C"),
    (600, "B"),
    (1000, "A"),
    (2500, "S"),
]

DEFAULT_LEVEL = "Foundation"
DEFAULT_RANK = "E"

# --- Competencies ---
COMPETENCY_CATEGORIES = (
    "customer_analysis",
    "business_communication",
    "revenue_strategy",
    "value_articulation",
    "strategic_thinking",
)

COMPETENCY_SCORE_MIN = 0
COMPETENCY_SCORE_MAX = 100

# Level of a single 0-100 category score, used by composite milestones.
CATEGORY_LEVEL_THRESHOLDS = [
    (0, "Foundation"),
    (20, "Developing"),
    (40, "Proficient"),
    (60, "Advanced"),
    (80, "Expert"),
]

# Competency gained per completed tool.
TOOL_COMPETENCY_GAINS = {
    "icp": [{"category": "customer_analysis", "amount": 3}],
    "cost": [
        {"category": "value_articulation", "amount": 4},
        {"category": "revenue_strategy", "amount": 2},
    ],
    "business_case": [
        {"category": "strategic_thinking", "amount": 5},
        {"category": "business_communication", "amount": 4},
    ],
}

# --- Competency Gates ---
# Each gate counts "qualifying" events of `source_tool`; the qualifier names a
# predicate registered in competency_gates.QUALIFIERS.
COMPETENCY_GATES = {
    "cost_calculator": {
        "source_tool": "icp",
        "required": 3,
        "qualifier": "min_score",
        "min_score": 70,
        "level": "Developing",
        "competency": "Value Quantification",
        "competency_achieved": "Customer Analysis Foundation",
        "locked_reason": "Additional customer profiling practice required",
        "unlocked_reason": "Customer analysis competency demonstrated",
        "next_requirement": "Complete ICP analysis with 70%+ accuracy",
    },
    "business_case": {
        "source_tool": "cost",
        "required": 2,
        "qualifier": "comprehensive_cost",
        "min_seconds": 600,
        # Set to e.g. 100000 to also require that much annual impact.
        "min_annual_cost": None,
        "level": "Proficient",
        "competency": "Strategic Development",
        "competency_achieved": "Value Articulation Mastery",
        "locked_reason": "Additional comprehensive value analysis required",
        "unlocked_reason": "Value articulation mastery confirmed",
        "next_requirement": "Complete a thorough cost analysis (10+ minutes)",
    },
}

UNGATED_TOOLS = {
    "icp": {
        "level": "Foundation",
        "competency": "Customer Intelligence",
        "unlocked_reason": "Foundation methodology - always available",
    },
}

# --- Impact & Quality Labels ---
IMPACT_LEVELS = [
    (1000000, "Transformational"),
    (500000, "High Impact"),
    (250000, "Significant"),
    (100000, "Moderate"),
    (50000, "Baseline"),
]

BUSINESS_CASE_TEMPLATE_QUALITY = {
    "pilot_program": "Foundation",
    "full_implementation": "Advanced",
    "comprehensive_strategy": "Expert",
}
BUSINESS_CASE_THOROUGH_SECONDS = 900

# --- Professional Milestones ---
MILESTONES = [
    {
        "id": "customer_intelligence_foundation",
        "name": "Customer Intelligence Foundation",
        "description": "Demonstrate systematic customer analysis capability",
        "category": "Foundation",
        "requirement_type": "tool_count",
        "requirement_params": {"tool": "icp", "count": 1},
        "reward_points": 50,
        "reward_competency_gain": {"category": "customer_analysis", "amount": 5},
        "badge": "Foundation Analyst",
        "hidden_rank": "E",
    },
    {
        "id": "systematic_analyzer",
        "name": "Systematic Analysis Excellence",
        "description": "Complete comprehensive customer intelligence development",
        "category": "Consistency",
        "requirement_type": "windowed_tool_count",
        "requirement_params": {"tool": "icp", "count": 5, "days": 7},
        "reward_points": 150,
        "reward_competency_gain": {"category": "customer_analysis", "amount": 10},
        "badge": "Systematic Professional",
        "hidden_rank": "D",
    },
    {
        "id": "value_communication_specialist",
        "name": "Value Communication Specialist",
        "description": "Build compelling ROI models with exceptional returns",
        "category": "Excellence",
        "requirement_type": "tool_count",
        "requirement_params": {"tool": "cost", "count": 3, "min_roi": 150, "default_investment": 50000},
        "reward_points": 200,
        "reward_competency_gain": {"category": "value_articulation", "amount": 15},
        "badge": "Value Expert",
        "hidden_rank": "C",
    },
    {
        "id": "efficiency_expert",
        "name": "Process Efficiency Expert",
        "description": "Complete full methodology workflow with exceptional efficiency",
        "category": "Performance",
        "requirement_type": "workflow_speed",
        "requirement_params": {"max_minutes": 20},
        "reward_points": 175,
        "reward_competency_gain": {"category": "revenue_strategy", "amount": 12},
        "badge": "Efficiency Specialist",
        "hidden_rank": "C",
    },
    {
        "id": "methodology_consistency",
        "name": "Methodology Master",
        "description": "Maintain consistent professional development practice",
        "category": "Mastery",
        "requirement_type": "consistency_streak",
        "requirement_params": {"days": 30},
        "reward_points": 500,
        "reward_competency_gain": {"category": "all", "amount": 20},
        "badge": "Methodology Authority",
        "hidden_rank": "B",
    },
    {
        "id": "revenue_strategy_authority",
        "name": "Revenue Strategy Authority",
        "description": "Reach advanced competency in all professional domains",
        "category": "Authority",
        "requirement_type": "all_competencies_at_level",
        "requirement_params": {"level": "Advanced"},
        "reward_points": 1000,
        "reward_competency_gain": {"category": "all", "amount": 30},
        "badge": "Strategic Authority",
        "hidden_rank": "A",
    },
    {
        "id": "daily_dedication",
        "name": "Daily Professional Development",
        "description": "Complete daily professional objectives",
        "category": "Engagement",
        "requirement_type": "consecutive_days",
        "requirement_params": {"tool": "daily_objective", "days": 7},
        "reward_points": 100,
        "reward_competency_gain": {"category": "business_communication", "amount": 8},
        "badge": "Dedicated Professional",
        "hidden_rank": "E",
    },
    {
        "id": "comprehensive_strategist",
        "name": "Comprehensive Business Strategist",
        "description": "Complete full strategic analysis workflow multiple times",
        "category": "Strategic",
        "requirement_type": "tool_count",
        "requirement_params": {"tool": "workflow_complete", "count": 10, "require_complete": True},
        "reward_points": 350,
        "reward_competency_gain": {"category": "strategic_thinking", "amount": 25},
        "badge": "Strategic Professional",
        "hidden_rank": "B",
    },
    {
        "id": "value_multiplier",
        "name": "Value Multiplication Expert",
        "description": "Identify exceptional business value opportunities",
        "category": "Impact",
        "requirement_type": "metric_total",
        "requirement_params": {"tool": "cost", "metric": "annual_cost", "amount": 1000000},
        "reward_points": 400,
        "reward_competency_gain": {"category": "value_articulation", "amount": 20},
        "badge": "Value Authority",
        "hidden_rank": "A",
    },
    {
        "id": "knowledge_distributor",
        "name": "Strategic Knowledge Distributor",
        "description": "Share strategic insights with stakeholder community",
        "category": "Leadership",
        "requirement_type": "tool_count",
        "requirement_params": {"tool": "export", "count": 20},
        "reward_points": 250,
        "reward_competency_gain": {"category": "business_communication", "amount": 15},
        "badge": "Knowledge Leader",
        "hidden_rank": "B",
    },
    {
        "id": "strategic_proposal_development",
        "name": "Strategic Proposal Development",
        "description": "Develop a first executive business case",
        "category": "Strategic Development",
        "requirement_type": "tool_count",
        "requirement_params": {"tool": "business_case", "count": 1},
        "reward_points": 100,
        "reward_competency_gain": None,
        "badge": "Proposal Developer",
        "hidden_rank": "D",
    },
    {
        "id": "full_methodology_coverage",
        "name": "Comprehensive Revenue Strategist",
        "description": "Apply every analysis methodology at least once",
        "category": "Comprehensive Mastery",
        "requirement_type": "all_tools_completed",
        "requirement_params": {"tools": ["icp", "cost", "business_case"]},
        "reward_points": 200,
        "reward_competency_gain": None,
        "badge": "Revenue Strategist",
        "hidden_rank": "C",
    },
]

# --- Airtable Fields ---
AIRTABLE_FIELDS = {
    "customer_id": "Customer ID",
    "customer_name": "Customer Name",
    "action_history": "Action History",
    "competency_progress": "Competency Progress",
    "tool_access_status": "Tool Access Status",
    "milestone_progress": "Milestone Progress",
    "state_version": "State Version",
}

GAMIFICATION_FIELDS = [
    AIRTABLE_FIELDS["action_history"],
    AIRTABLE_FIELDS["competency_progress"],
    AIRTABLE_FIELDS["tool_access_status"],
    AIRTABLE_FIELDS["milestone_progress"],
]

AIRTABLE_BATCH_SIZE = 10

# --- Worker ---
WORKER_CONFIG = {
    "max_concurrent_retries": 3,
    "retry_countdown_seconds": 2,
}
