"""GraphQL documents for the upstream issue tracker."""

PAGE_INFO = "pageInfo { hasNextPage endCursor }"

TEAMS_QUERY = f"""
query Teams($first: Int!, $after: String) {{
  teams(first: $first, after: $after) {{
    {PAGE_INFO}
    nodes {{ id name key description color icon parent {{ id }} createdAt updatedAt }}
  }}
}}
"""

INITIATIVES_QUERY = f"""
query Initiatives($first: Int!, $after: String) {{
  initiatives(first: $first, after: $after) {{
    {PAGE_INFO}
    nodes {{
      id name description status targetDate color icon
      owner {{ id name }}
      projects {{ nodes {{ id }} }}
      createdAt updatedAt
    }}
  }}
}}
"""

PROJECTS_QUERY = f"""
query TeamProjects($filter: ProjectFilter!, $first: Int!, $after: String) {{
  projects(first: $first, after: $after, filter: $filter) {{
    {PAGE_INFO}
    nodes {{
      id name description state priority progress startDate targetDate url color icon
      status {{ id name type }}
      lead {{ id name }}
      teams {{ nodes {{ id }} }}
      createdAt updatedAt
    }}
  }}
}}
"""

ISSUES_QUERY = f"""
query TeamIssues($filter: IssueFilter!, $first: Int!, $after: String) {{
  issues(first: $first, after: $after, orderBy: updatedAt, filter: $filter) {{
    {PAGE_INFO}
    nodes {{
      id identifier title description priority priorityLabel url dueDate estimate
      state {{ id name color type }}
      assignee {{ id name }}
      labels {{ nodes {{ id name color }} }}
      team {{ id }}
      project {{ id name color }}
      cycle {{ id number name }}
      createdAt updatedAt
    }}
  }}
}}
"""

COMMENTS_QUERY = f"""
query Comments($filter: CommentFilter!, $first: Int!, $after: String) {{
  comments(first: $first, after: $after, filter: $filter) {{
    {PAGE_INFO}
    nodes {{ id body user {{ id name }} issue {{ id }} parent {{ id }} createdAt updatedAt }}
  }}
}}
"""

VIEWER_QUERY = """
query Viewer { viewer { id name email } }
"""

COMMENT_CREATE_MUTATION = """
mutation CommentCreate($input: CommentCreateInput!) {
  commentCreate(input: $input) {
    success
    comment { id body user { id name } issue { id } createdAt updatedAt }
  }
}
"""

WEBHOOK_CREATE_MUTATION = """
mutation WebhookCreate($input: WebhookCreateInput!) {
  webhookCreate(input: $input) {
    success
    webhook { id enabled }
  }
}
"""

WEBHOOK_DELETE_MUTATION = """
mutation WebhookDelete($id: String!) {
  webhookDelete(id: $id) { success }
}
"""
