ATOMIC_HABIT_PROMPT = """
You are an expert in habit formation based on *Atomic Habits* by James Clear. Generate a practical, personalized habit plan using the four laws: Make it Obvious, Make it Attractive, Make it Easy, and Make it Satisfying. Use this user data:
- Habit: {habit_name}
- Current Frequency: {frequency}
- Motivation Level: {motivation}
- Obstacles: {obstacles}

Infer reasonable suggestions for Preferred Time, Available Resources, and Reward if not provided, based on the habit, frequency, motivation, and obstacles. Provide actionable, specific recommendations tailored to the user's context, addressing obstacles and leveraging inferred details.
Return ONLY a valid JSON object with keys: obvious, attractive, easy, satisfying, each containing a concise, realistic suggestion. Do not include any text outside the JSON object (e.g., no explanations or markdown).
"""

GOAL_PLAN_SYSTEM_PROMPT = (
    "You are an expert habit coach and goal planning assistant. You create detailed, actionable, "
    "and personalized plans to help people achieve their goals. Always respond with valid JSON."
)

GOAL_PLAN_PROMPT = """You are an expert habit coach and goal planning assistant. Create a detailed, actionable plan for the following user:

**User Profile:**
- Age: {age}
- Occupation: {occupation}
- Lifestyle: {lifestyle}
- Energy Level: {energy_level}
- Schedule: {schedule}
- About: {description}
- Other Goals: {goals}
- Current Habits: {current_habits}
- Challenges: {challenges}
- Preferences: {preferences}

**Primary Goal:**
{primary_goal}

**Timeline:**
{goal_duration} {duration_type}

**Instructions:**
Create a comprehensive, personalized plan that includes:

1. **Goal Breakdown**: Break down the primary goal into 3-5 key milestones
2. **Daily Habits**: Suggest 3-7 daily habits that will help achieve this goal
3. **Weekly Milestones**: Define weekly checkpoints and what should be accomplished
4. **Action Steps**: Provide specific, actionable steps for the first week
5. **Tips & Motivation**: Include personalized tips based on their challenges and preferences
6. **Success Metrics**: Define how to measure progress

Format the response as a structured JSON object with the following structure:
{
  "summary": "Brief overview of the plan",
  "milestones": [
    {"title": "Milestone name", "description": "What needs to be achieved", "timeframe": "When to achieve it", "tasks": ["task 1", "task 2"]}
  ],
  "dailyHabits": [
    {"name": "Habit name", "description": "Why this habit matters", "frequency": "daily/weekly", "duration": "How long to spend", "bestTime": "When to do it"}
  ],
  "weeklyCheckpoints": [
    {"week": 1, "focus": "What to focus on", "goals": ["goal 1", "goal 2"], "reflection": "Questions to ask yourself"}
  ],
  "firstWeekActions": [
    {"day": 1, "tasks": ["task 1", "task 2"], "focus": "Daily focus area"}
  ],
  "personalizedTips": ["Tip 1 based on their profile", "Tip 2 based on their challenges"],
  "successMetrics": {"daily": "How to measure daily progress", "weekly": "How to measure weekly progress", "overall": "How to measure overall success"}
}

Make the plan realistic, achievable, and tailored to their specific situation. Consider their occupation, lifestyle, and energy level when scheduling activities."""

REMINDER_FIRST_MESSAGE = (
    "Hello, its your personal assistant here to remind you about something very important from habit elevate ! "
)
