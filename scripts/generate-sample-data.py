#!/usr/bin/env python3
"""
TaskFlow — Sample Data Generator
Generates realistic seed data aligned with the current database models.
Used for development and demo environments.

Usage:
    python scripts/generate-sample-data.py
    python scripts/generate-sample-data.py --users 50 --tasks 400 --output sample-data.json

Every generated account shares the password given by --password.
"""

import json
import random
import uuid
import argparse
from datetime import datetime, timedelta, timezone
from typing import Any

import bcrypt


# ── Configuration ───────────────────────────────────────────

USER_ROLES = ["USER"] * 12 + ["TEAM_LEAD"] * 3 + ["MANAGER"] * 2 + ["ADMIN"]
ORG_ROLES = ["MEMBER"] * 6 + ["MANAGER"]
PRIORITIES = ["LOW", "MEDIUM", "MEDIUM", "HIGH", "URGENT"]
STATUSES = ["TODO", "TODO", "IN_PROGRESS", "REVIEW", "COMPLETED", "COMPLETED"]
STATUS_FLOW = ["TODO", "IN_PROGRESS", "REVIEW", "COMPLETED"]

FIRST_NAMES = ["Alex", "Jordan", "Taylor", "Morgan", "Casey", "Riley", "Quinn", "Avery", "Sage", "River",
               "Kai", "Rowan", "Phoenix", "Skyler", "Dakota", "Reese", "Finley", "Harper", "Emery", "Blake"]
LAST_NAMES = ["Chen", "Patel", "Kim", "Santos", "Müller", "Okafor", "Tanaka", "Johansson", "Silva", "Kowalski",
              "Nguyen", "Andersen", "Dubois", "Rossi", "Yamamoto", "Petrov", "Larsson", "Fernandez", "Ali", "Park"]
DOMAINS = ["taskflow.dev", "example.com"]
ORG_NAMES = ["Acme Corp", "Globex", "Initech", "Umbrella Labs", "Stark Industries"]
TEAM_NAMES = ["Platform", "Mobile", "Design", "Data", "Support", "Growth"]

TASK_VERBS = ["Write", "Review", "Fix", "Ship", "Plan", "Refactor", "Document", "Test", "Migrate", "Triage"]
TASK_OBJECTS = ["login flow", "billing page", "release notes", "search index", "onboarding email",
                "API rate limits", "dashboard charts", "CI pipeline", "mobile navbar", "backup job"]
COMMENTS = ["On it.", "Blocked on review.", "Pushed a first draft.", "Can we split this up?",
            "Done, please verify.", "Moving the due date by a day.", "Needs design input."]


class SampleDataGenerator:
    """Generates realistic sample data for TaskFlow."""

    def __init__(self, seed: int = 42, password: str = "Password123!"):
        random.seed(seed)
        self.seed = seed
        self.now = datetime.now(timezone.utc)
        self.password_hash = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")

    def _uuid(self) -> str:
        return str(uuid.uuid4())

    def _past(self, max_days: int = 120) -> datetime:
        return self.now - timedelta(days=random.randint(0, max_days), hours=random.randint(0, 23))

    # ── Generators ──────────────────────────────────────────

    def generate_user(self, index: int) -> dict:
        first = random.choice(FIRST_NAMES)
        last = random.choice(LAST_NAMES)
        return {
            "id": self._uuid(),
            "email": f"{first.lower()}.{last.lower()}{index}@{random.choice(DOMAINS)}",
            "name": f"{first} {last}",
            "password_hash": self.password_hash,
            "role": "SUPER_ADMIN" if index == 0 else random.choice(USER_ROLES),
            "is_active": index == 0 or random.random() > 0.05,
            "manager_id": None,
            "created_at": self._past(365).isoformat(),
        }

    def generate_organization(self, index: int) -> dict:
        name = ORG_NAMES[index] if index < len(ORG_NAMES) else f"Org {index}"
        return {
            "id": self._uuid(),
            "name": name,
            "slug": name.lower().replace(" ", "-"),
            "plan": random.choice(["FREE", "TEAM", "BUSINESS", "ENTERPRISE"]),
            "created_at": self._past(365).isoformat(),
        }

    def generate_task(self, creator: dict, assignee: dict | None, org: dict | None,
                      team: dict | None) -> tuple[dict, list[dict]]:
        created = self._past(90)
        status = random.choice(STATUSES)
        if team:
            visibility = "TEAM"
        elif org:
            visibility = random.choice(["PRIVATE", "ORGANIZATION"])
        else:
            visibility = "PRIVATE"

        task = {
            "id": self._uuid(),
            "title": f"{random.choice(TASK_VERBS)} {random.choice(TASK_OBJECTS)}",
            "description": "",
            "due_date": (created + timedelta(days=random.randint(1, 30))).isoformat() if random.random() > 0.3 else None,
            "priority": random.choice(PRIORITIES),
            "status": status,
            "creator_id": creator["id"],
            "assigned_to_id": assignee["id"] if assignee else None,
            "organization_id": org["id"] if org else None,
            "team_id": team["id"] if team else None,
            "visibility": visibility,
            "created_at": created.isoformat(),
        }

        history = [self._history(task, creator, "created", created)]
        if assignee and assignee["id"] != creator["id"]:
            history.append(self._history(task, creator, "assigned", created, "assigned_to_id", None, assignee["id"]))
        # Walk the status flow up to the final status
        when = created
        actor = assignee or creator
        for old, new in zip(STATUS_FLOW, STATUS_FLOW[1:STATUS_FLOW.index(status) + 1]):
            when = min(self.now, when + timedelta(hours=random.randint(2, 96)))
            history.append(self._history(task, actor, "status_changed", when, "status", old, new))
        return task, history

    def _history(self, task: dict, user: dict, action: str, when: datetime,
                 field: str | None = None, old: str | None = None, new: str | None = None) -> dict:
        return {
            "id": self._uuid(),
            "task_id": task["id"],
            "user_id": user["id"],
            "action": action,
            "field": field,
            "old_value": old,
            "new_value": new,
            "created_at": when.isoformat(),
        }

    def generate_comment(self, task: dict, author: dict) -> dict:
        return {
            "id": self._uuid(),
            "task_id": task["id"],
            "user_id": author["id"],
            "content": random.choice(COMMENTS),
            "created_at": self._past(30).isoformat(),
        }

    def generate_assignment_notification(self, task: dict) -> dict:
        return {
            "id": self._uuid(),
            "title": "New Task Assigned",
            "message": f"You have been assigned to task: {task['title']}",
            "type": "task_assigned",
            "user_id": task["assigned_to_id"],
            "task_id": task["id"],
            "read": random.random() > 0.4,
            "created_at": task["created_at"],
        }

    # ── Main Generator ──────────────────────────────────────

    def generate_all(self, counts: dict[str, int] | None = None) -> dict[str, Any]:
        c = counts or {"users": 25, "organizations": 3, "teams_per_org": 2, "tasks": 150, "comments": 80}

        users = [self.generate_user(i) for i in range(c["users"])]
        # A light management chain: everyone reports to one of the first few users
        for user in users[4:]:
            user["manager_id"] = random.choice(users[:4])["id"]

        orgs = [self.generate_organization(i) for i in range(c["organizations"])]
        memberships, teams, team_memberships = [], [], []
        org_members: dict[str, list[dict]] = {}
        team_members: dict[str, list[dict]] = {}

        for org in orgs:
            members = random.sample(users, k=min(len(users), random.randint(5, 12)))
            org_members[org["id"]] = members
            for position, user in enumerate(members):
                memberships.append({
                    "id": self._uuid(),
                    "user_id": user["id"],
                    "organization_id": org["id"],
                    "role": "SUPER_ADMIN" if position == 0 else random.choice(ORG_ROLES),
                })
            for name in random.sample(TEAM_NAMES, k=min(len(TEAM_NAMES), c["teams_per_org"])):
                team = {"id": self._uuid(), "name": name, "description": None, "organization_id": org["id"]}
                teams.append(team)
                crew = random.sample(members, k=min(len(members), random.randint(2, 5)))
                team_members[team["id"]] = crew
                for position, user in enumerate(crew):
                    team_memberships.append({
                        "id": self._uuid(),
                        "user_id": user["id"],
                        "team_id": team["id"],
                        "role": "LEADER" if position == 0 else "MEMBER",
                    })

        tasks, history, notifications = [], [], []
        for _ in range(c["tasks"]):
            org = random.choice(orgs) if orgs and random.random() > 0.3 else None
            team = None
            if org:
                org_teams = [t for t in teams if t["organization_id"] == org["id"]]
                team = random.choice(org_teams) if org_teams and random.random() > 0.5 else None
            pool = team_members[team["id"]] if team else org_members[org["id"]] if org else users
            creator = random.choice(pool)
            if not org:
                # Individual mode: self-assigned or nobody
                assignee = creator if random.random() > 0.5 else None
            else:
                assignee = random.choice(pool) if random.random() > 0.2 else None
                if assignee and not assignee["is_active"]:
                    assignee = None

            task, task_history = self.generate_task(creator, assignee, org, team)
            tasks.append(task)
            history.extend(task_history)
            if assignee and assignee["id"] != creator["id"]:
                notifications.append(self.generate_assignment_notification(task))

        comments = []
        for _ in range(c["comments"]):
            task = random.choice(tasks)
            author_id = task["assigned_to_id"] or task["creator_id"]
            comments.append(self.generate_comment(task, {"id": author_id}))

        data = {
            "users": users,
            "organizations": orgs,
            "memberships": memberships,
            "teams": teams,
            "team_memberships": team_memberships,
            "tasks": tasks,
            "task_history": history,
            "comments": comments,
            "notifications": notifications,
        }
        return {
            "generated_at": self.now.isoformat(),
            "generator": "TaskFlow Sample Data Generator v1.0",
            "seed": self.seed,
            "counts": {name: len(rows) for name, rows in data.items()},
            "data": data,
        }


# ── CLI ─────────────────────────────────────────────────────

def main():
    parser = argparse.ArgumentParser(description="TaskFlow Sample Data Generator")
    parser.add_argument("--users", type=int, default=25, help="Number of users")
    parser.add_argument("--organizations", type=int, default=3, help="Number of organizations")
    parser.add_argument("--teams", type=int, default=2, help="Teams per organization")
    parser.add_argument("--tasks", type=int, default=150, help="Number of tasks")
    parser.add_argument("--comments", type=int, default=80, help="Number of comments")
    parser.add_argument("--password", type=str, default="Password123!", help="Password for every account")
    parser.add_argument("--output", type=str, default="sample-data.json", help="Output file")
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    parser.add_argument("--compact", action="store_true", help="Write JSON without indentation")
    args = parser.parse_args()

    generator = SampleDataGenerator(seed=args.seed, password=args.password)
    data = generator.generate_all({
        "users": max(1, args.users),
        "organizations": args.organizations,
        "teams_per_org": args.teams,
        "tasks": args.tasks,
        "comments": args.comments if args.tasks else 0,
    })

    with open(args.output, "w") as f:
        json.dump(data, f, indent=None if args.compact else 2, default=str)

    counts = data["counts"]
    print(f"✅ Sample data generated: {args.output}")
    for name, n in counts.items():
        print(f"   {name.replace('_', ' ').title()}: {n}")
    print(f"   Total Records: {sum(counts.values())}")


if __name__ == "__main__":
    main()
