"""
Synapse Built-in Workflows

Automations shipped with the orchestrator and loaded at startup.
"""

from synapse_orchestrator.types import (
    END_WORKFLOW,
    ActionSpec,
    ActionStep,
    ActionType,
    AIDecisionStep,
    AIPredictionTrigger,
    ConditionSpec,
    ConditionStep,
    DecisionSpec,
    EventTrigger,
    ParallelStep,
    ScheduleTrigger,
    Workflow,
    WorkflowCategory,
)


def get_builtin_workflows() -> list[Workflow]:
    """Get fresh copies of all built-in workflows."""
    return [
        invoice_followup_workflow(),
        project_allocation_workflow(),
        satisfaction_monitor_workflow(),
        hr_onboarding_workflow(),
    ]


def _email(action_id: str, template: str, target: str = "client_email") -> ActionSpec:
    return ActionSpec(
        id=action_id,
        type=ActionType.EMAIL,
        target=target,
        parameters={"template": template},
    )


def invoice_followup_workflow() -> Workflow:
    """Daily follow-up of overdue invoices, escalating by severity."""
    check_step = ConditionStep(
        id="check_overdue",
        name="Check overdue invoices",
        condition=ConditionSpec(
            id="overdue_check",
            expression="invoices_overdue > 0",
            ai_evaluated=True,
        ),
        on_success="categorize_overdue",
        on_failure=END_WORKFLOW,
    )

    categorize_step = AIDecisionStep(
        id="categorize_overdue",
        name="Categorize by age",
        decision=DecisionSpec(
            model="invoice_categorizer",
            input_data=["invoice_amount", "days_overdue", "client_history"],
            output_actions={
                "gentle_reminder": _email("send_reminder", "gentle_reminder"),
                "firm_notice": _email("send_notice", "firm_notice"),
                "legal_action": ActionSpec(
                    id="escalate_legal",
                    type=ActionType.NOTIFICATION,
                    target="legal_team",
                    parameters={"type": "legal_escalation"},
                ),
            },
            confidence=0.85,
            fallback_action=_email("default_reminder", "standard_reminder"),
        ),
        next_step_id="log_action",
    )

    log_step = ActionStep(
        id="log_action",
        name="Record follow-up",
        action=ActionSpec(
            id="log_followup",
            type=ActionType.DATA_UPDATE,
            target="invoice_followups",
            parameters={"action": "logged", "timestamp": "now"},
        ),
    )

    return Workflow(
        id="auto_invoice_followup",
        name="Automatic Invoice Follow-up",
        description="Follows up unpaid invoices with progressively firmer actions",
        category=WorkflowCategory.FINANCE,
        triggers=[ScheduleTrigger(id="overdue_invoice", cron_expression="0 9 * * *")],
        steps=[check_step, categorize_step, log_step],
        ai_adaptive=True,
        priority=8,
        metadata={"auto_generated": True},
    )


def project_allocation_workflow() -> Workflow:
    """Assign new projects to the best-suited team."""
    analyze_step = AIDecisionStep(
        id="analyze_project",
        name="Analyze project",
        decision=DecisionSpec(
            model="project_analyzer",
            input_data=["project_complexity", "required_skills", "deadline", "budget"],
            output_actions={
                "assign_team_a": ActionSpec(
                    id="assign_team",
                    type=ActionType.DATA_UPDATE,
                    target="project_assignments",
                    parameters={"team": "team_a"},
                ),
                "assign_team_b": ActionSpec(
                    id="assign_team",
                    type=ActionType.DATA_UPDATE,
                    target="project_assignments",
                    parameters={"team": "team_b"},
                ),
                "needs_review": ActionSpec(
                    id="escalate_review",
                    type=ActionType.NOTIFICATION,
                    target="project_managers",
                    parameters={"type": "manual_review_needed"},
                ),
            },
            confidence=0.92,
            fallback_action=ActionSpec(
                id="manual_assignment",
                type=ActionType.NOTIFICATION,
                target="project_managers",
                parameters={"type": "manual_assignment_required"},
            ),
        ),
        next_step_id="notify_team",
    )

    notify_step = ActionStep(
        id="notify_team",
        name="Notify assigned team",
        action=ActionSpec(
            id="team_notification",
            type=ActionType.NOTIFICATION,
            target="assigned_team",
            parameters={"type": "new_project_assignment"},
        ),
        next_step_id="setup_tracking",
    )

    tracking_step = ActionStep(
        id="setup_tracking",
        name="Set up tracking",
        action=ActionSpec(
            id="setup_project_tracking",
            type=ActionType.API_CALL,
            target="project_tracking_api",
            parameters={"action": "initialize_tracking"},
        ),
    )

    return Workflow(
        id="smart_project_allocation",
        name="Smart Project Allocation",
        description="Assigns new projects to the best-suited team",
        category=WorkflowCategory.OPERATIONS,
        triggers=[EventTrigger(id="new_project", event_type="project_created")],
        steps=[analyze_step, notify_step, tracking_step],
        ai_adaptive=True,
        priority=9,
        metadata={"auto_generated": True},
    )


def satisfaction_monitor_workflow() -> Workflow:
    """React to predicted drops in client satisfaction."""
    evaluate_step = AIDecisionStep(
        id="evaluate_severity",
        name="Evaluate severity",
        decision=DecisionSpec(
            model="satisfaction_evaluator",
            input_data=["satisfaction_score", "client_value", "interaction_history"],
            output_actions={
                "immediate_contact": ActionSpec(
                    id="urgent_contact",
                    type=ActionType.VOICE_CALL,
                    target="client_phone",
                    parameters={"priority": "urgent"},
                ),
                "send_survey": _email("satisfaction_survey", "satisfaction_survey"),
                "schedule_meeting": ActionSpec(
                    id="client_meeting",
                    type=ActionType.API_CALL,
                    target="calendar_api",
                    parameters={"action": "schedule_meeting"},
                ),
            },
            confidence=0.88,
            fallback_action=_email("standard_followup", "check_in"),
        ),
        next_step_id="track_response",
    )

    track_step = ActionStep(
        id="track_response",
        name="Track response",
        action=ActionSpec(
            id="response_tracking",
            type=ActionType.DATA_UPDATE,
            target="client_interactions",
            parameters={"type": "satisfaction_followup"},
        ),
    )

    return Workflow(
        id="client_satisfaction_monitor",
        name="Client Satisfaction Monitor",
        description="Watches client satisfaction and triggers corrective actions",
        category=WorkflowCategory.SALES,
        triggers=[
            AIPredictionTrigger(id="satisfaction_drop", model="satisfaction_predictor", threshold=0.7),
        ],
        steps=[evaluate_step, track_step],
        ai_adaptive=True,
        priority=10,
        metadata={"auto_generated": True},
    )


def hr_onboarding_workflow() -> Workflow:
    """Onboard a new hire: accounts, workspace and meetings in parallel."""
    welcome_package = ParallelStep(
        id="prepare_welcome_package",
        name="Prepare welcome package",
        steps=[
            ActionStep(
                id="generate_credentials",
                name="Generate credentials",
                action=ActionSpec(
                    id="create_accounts",
                    type=ActionType.API_CALL,
                    target="identity_api",
                    parameters={"action": "create_user"},
                ),
            ),
            ActionStep(
                id="prepare_workspace",
                name="Prepare workspace",
                action=ActionSpec(
                    id="setup_workspace",
                    type=ActionType.NOTIFICATION,
                    target="facilities_team",
                    parameters={"type": "workspace_setup"},
                ),
            ),
            ActionStep(
                id="schedule_meetings",
                name="Schedule meetings",
                action=ActionSpec(
                    id="onboarding_meetings",
                    type=ActionType.API_CALL,
                    target="calendar_api",
                    parameters={"action": "schedule_onboarding"},
                ),
            ),
        ],
        next_step_id="send_welcome_email",
    )

    welcome_email = ActionStep(
        id="send_welcome_email",
        name="Send welcome email",
        action=_email("welcome_email", "welcome_package", target="employee_email"),
        next_step_id="track_progress",
    )

    track_step = ActionStep(
        id="track_progress",
        name="Track onboarding progress",
        action=ActionSpec(
            id="progress_tracking",
            type=ActionType.DATA_UPDATE,
            target="employee_onboarding",
            parameters={"status": "in_progress"},
        ),
    )

    return Workflow(
        id="hr_onboarding_automation",
        name="HR Onboarding Automation",
        description="Automates the onboarding of new employees",
        category=WorkflowCategory.HR,
        triggers=[EventTrigger(id="new_employee", event_type="employee_hired")],
        steps=[welcome_package, welcome_email, track_step],
        ai_adaptive=False,
        priority=7,
        metadata={"auto_generated": True},
    )
