"""Built-in demo artifact set used by ``code-reveal demo``."""

from typing import Dict, List

from .core.models import FileAction, FileChange


# Content of modified files before the demo session rewrites them
DEMO_BASELINE: Dict[str, str] = {
    'src/services/authService.ts': """import axios from 'axios'

const API_BASE_URL = 'http://localhost:3000/api'

export async function login(email: string, password: string) {
  const response = await axios.post(`${API_BASE_URL}/auth/login`, { email, password })
  return response.data
}
""",
}


DEMO_FILES: List[FileChange] = [
    FileChange(
        file_path='src/features/auth/LoginForm.tsx',
        action=FileAction.CREATE,
        language='typescript',
        content="""import React, { useState } from 'react'
import { useAuth } from '../../hooks/useAuth'
import './LoginForm.css'

export const LoginForm: React.FC = () => {
  const [email, setEmail] = useState('')
  const [password, setPassword] = useState('')
  const { login, isLoading } = useAuth()

  const handleSubmit = async (e: React.FormEvent) => {
    e.preventDefault()
    await login({ email, password })
  }

  return (
    <form className="login-form" onSubmit={handleSubmit}>
      <h2 className="login-form__title">Welcome Back</h2>
      <input type="email" value={email} onChange={(e) => setEmail(e.target.value)} />
      <input type="password" value={password} onChange={(e) => setPassword(e.target.value)} />
      <button type="submit" disabled={isLoading}>Sign In</button>
    </form>
  )
}
""",
    ),
    FileChange(
        file_path='src/features/auth/LoginForm.css',
        action=FileAction.CREATE,
        language='css',
        content=""".login-form {
  width: 100%;
  max-width: 400px;
  padding: 2rem;
  border-radius: 12px;
}

.login-form__title {
  margin: 0 0 1.5rem 0;
  font-size: 1.75rem;
  text-align: center;
}
""",
    ),
    FileChange(
        file_path='src/services/authService.ts',
        action=FileAction.MODIFY,
        language='typescript',
        content="""import axios from 'axios'
import type { LoginCredentials, AuthResponse } from '../types/auth'

const API_BASE_URL = import.meta.env.VITE_API_URL || 'http://localhost:3000/api'

export async function login(credentials: LoginCredentials): Promise<AuthResponse> {
  const response = await axios.post<AuthResponse>(`${API_BASE_URL}/auth/login`, credentials)
  return response.data
}

export async function logout(token: string): Promise<void> {
  await axios.post(`${API_BASE_URL}/auth/logout`, {}, {
    headers: { Authorization: `Bearer ${token}` },
  })
}
""",
    ),
]


def demo_files() -> List[FileChange]:
    """Return the demo artifact set in reveal order."""
    return list(DEMO_FILES)
